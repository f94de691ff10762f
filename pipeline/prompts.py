"""Default prompt templates.

Placeholders: {language} for OCR; {source_language} and {target_language}
for translation. Continuity context and the text to translate are appended
by the inference gateway.
"""

from typing import Optional


OCR_PROMPT = """You are transcribing a historical manuscript page.

**Input:** The page image and, if available, the end of the previous page's transcription.

**Output:** A faithful Markdown transcription that mirrors the page's layout.

**First:** note the detected language as [[language: ...]]

**Styles:** headings (#, ##, ###) follow the visual size of the text; **bold** and *italic*
as printed; keep line breaks and paragraphs.

**Annotations:**
- [[notes: ...]] for observations about the page
- [[margin: ...]] for marginal text
- [[gloss: ...]] for interlinear annotations
- [[unclear: ...]] for uncertain readings
- [[page number: N]] for visible page numbers

Preserve original spelling, capitalization and punctuation. Do not use code blocks.

**Language:** {language}"""

TRANSLATION_PROMPT = """You are translating a manuscript transcription for a general reader.

**Input:** The transcription and, if available, the end of the previous page's translation.

**Output:** A readable translation that keeps the transcription's Markdown structure
(headings, emphasis, tables, line breaks) and its [[...]] annotations, with their
content translated.

Add [[notes: ...]] where a modern reader needs context. Do not use code blocks.

**Source language:** {source_language}
**Target language:** {target_language}"""

PROMPTS = {
    "ocr": OCR_PROMPT,
    "translation": TRANSLATION_PROMPT,
}


def get_prompt(kind: str, name: str = None) -> str:
    """Prompt template by kind ("ocr" or "translation").

    Named variants are looked up as "{kind}:{name}" and fall back to the
    default for the kind.
    """
    if name and f"{kind}:{name}" in PROMPTS:
        return PROMPTS[f"{kind}:{name}"]
    return PROMPTS[kind]


def trailing_context(text: str, max_chars: int) -> Optional[str]:
    """Last max_chars characters of text, or None when there is nothing to carry."""
    if not text or max_chars <= 0:
        return None
    return text[-max_chars:]

"""
Manuscript digitization pipeline.

Stages are fixed: split/crop -> OCR -> translation.

- streaming: synchronous page-by-page processing of a job
- batch: provider-side bulk submission and reconciliation
- split: gutter detection and spread splitting
- cleanup: retention sweep over batch submissions
"""

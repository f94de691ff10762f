import json
import re
import threading
from pathlib import Path
from typing import Dict, Any, Callable, Generic, Iterator, List, Optional, Type, TypeVar

from pydantic import BaseModel


_SAFE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")

M = TypeVar("M", bound=BaseModel)


class DocumentNotFoundError(KeyError):
    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} not found")

    def __str__(self):
        return self.args[0]


def _check_id(doc_id: str) -> str:
    if not doc_id or not _SAFE_ID.match(doc_id) or ".." in doc_id:
        raise ValueError(f"Invalid document id: {doc_id!r}")
    return doc_id


class DocumentCollection:
    """A directory of JSON documents keyed by id.

    Directories are created lazily on first write. Writes go to a temp
    file that replaces the target, and read-modify-write updates hold
    the collection lock for their whole duration.
    """
    def __init__(self, directory: Path, name: str = None):
        self.directory = Path(directory)
        self.name = name or self.directory.name
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def path_for(self, doc_id: str) -> Path:
        return self.directory / f"{_check_id(doc_id)}.json"

    def exists(self, doc_id: str) -> bool:
        return self.path_for(doc_id).exists()

    def save(self, doc_id: str, data: Dict[str, Any]):
        with self._lock:
            output_file = self.path_for(doc_id)
            temp_file = output_file.with_suffix('.tmp')

            output_file.parent.mkdir(parents=True, exist_ok=True)

            try:
                with open(temp_file, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2)

                temp_file.replace(output_file)

            except Exception as e:
                if temp_file.exists():
                    temp_file.unlink()
                raise e

    def load(self, doc_id: str) -> Dict[str, Any]:
        file_path = self.path_for(doc_id)

        with self._lock:
            if not file_path.exists():
                raise DocumentNotFoundError(self.name, doc_id)

            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)

    def delete(self, doc_id: str) -> bool:
        with self._lock:
            file_path = self.path_for(doc_id)
            if not file_path.exists():
                return False
            file_path.unlink()
            return True

    def update(
        self,
        doc_id: str,
        fn: Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]
    ) -> Dict[str, Any]:
        """Apply fn to the stored document and save the result.

        fn may mutate in place and return None, or return a replacement.
        """
        with self._lock:
            data = self.load(doc_id)
            updated = fn(data)
            if updated is not None:
                data = updated
            self.save(doc_id, data)
            return data

    def list_ids(self) -> List[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))

    def iter_documents(self) -> Iterator[Dict[str, Any]]:
        for doc_id in self.list_ids():
            try:
                yield self.load(doc_id)
            except DocumentNotFoundError:
                # Deleted between listing and loading
                continue


class ModelStore(Generic[M]):
    """Typed access to a DocumentCollection through a pydantic model."""

    def __init__(self, collection: DocumentCollection, model: Type[M]):
        self.collection = collection
        self.model = model

    @property
    def lock(self) -> threading.RLock:
        return self.collection.lock

    def _dump(self, item: M) -> Dict[str, Any]:
        return item.model_dump(mode="json", by_alias=True, exclude_none=True)

    def get(self, doc_id: str) -> M:
        return self.model.model_validate(self.collection.load(doc_id))

    def find(self, doc_id: str) -> Optional[M]:
        try:
            return self.get(doc_id)
        except DocumentNotFoundError:
            return None

    def exists(self, doc_id: str) -> bool:
        return self.collection.exists(doc_id)

    def put(self, item: M) -> M:
        self.collection.save(item.id, self._dump(item))
        return item

    def get_raw(self, doc_id: str) -> Dict[str, Any]:
        return self.collection.load(doc_id)

    def update(self, doc_id: str, fn: Callable[[M], None]) -> M:
        """Load, mutate with fn, validate and save under the collection lock."""
        with self.collection.lock:
            item = self.get(doc_id)
            fn(item)
            item = self.model.model_validate(self._dump(item))
            self.put(item)
            return item

    def delete(self, doc_id: str) -> bool:
        return self.collection.delete(doc_id)

    def list(self) -> List[M]:
        return [self.model.model_validate(doc) for doc in self.collection.iter_documents()]

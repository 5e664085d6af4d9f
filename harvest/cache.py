from pathlib import Path
from typing import Any
import orjson, hashlib


def key_for(text: str) -> str:
    return hashlib.sha1(text.encode()).hexdigest()


def write_atomic(path: Path, data: bytes):
    # tmp sibling + replace, readers never see a half-written file
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_bytes(data)
    tmp.replace(path)


def dump_json(path: Path, obj: Any):
    write_atomic(path, orjson.dumps(obj, option=orjson.OPT_INDENT_2))


def load_json(path: Path):
    p = Path(path)
    return orjson.loads(p.read_bytes()) if p.exists() else None

import hashlib


def make_record_key(source: str, format_tag: str, payload: str) -> str:
    raw = f"{source}|{format_tag}|{payload}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def make_event_key(anchor_record_key: str) -> str:
    return hashlib.sha1(f"event|{anchor_record_key}".encode("utf-8")).hexdigest()

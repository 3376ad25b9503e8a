from __future__ import annotations

from ai_lens.inference import FeedCursor, OpaqueItem, parse_feed_payload, parse_opaque_item


def _raw(item_hash: str, file_name: str = "main.ts", **metadata: object) -> dict[str, object]:
    return {"hash": item_hash, "metadata": {"fileName": file_name, **metadata}}


def _items(*hashes: str) -> list[OpaqueItem]:
    return [
        OpaqueItem(hash=item_hash, file_name="a.py", source="tab", timestamp=index)
        for index, item_hash in enumerate(hashes)
    ]


def test_parse_opaque_item_normalizes_hash_and_metadata() -> None:
    item = parse_opaque_item(_raw("ABC", source="composer", timestamp=1_234), default_timestamp=9)

    assert item == OpaqueItem(
        hash="00000abc", file_name="main.ts", source="composer", timestamp=1_234
    )


def test_parse_opaque_item_defaults_unknown_source_and_missing_timestamp() -> None:
    item = parse_opaque_item(_raw("0000abcd", source="cli"), default_timestamp=42)

    assert item is not None
    assert item.source == "unknown"
    assert item.timestamp == 42


def test_parse_opaque_item_rejects_malformed_entries() -> None:
    assert parse_opaque_item("0000abcd", default_timestamp=0) is None
    assert parse_opaque_item({"hash": 12}, default_timestamp=0) is None
    assert parse_opaque_item({"hash": "not-hex"}, default_timestamp=0) is None
    assert parse_opaque_item({"hash": "0000abcd"}, default_timestamp=0) is None
    assert parse_opaque_item(_raw("0000abcd", file_name="  "), default_timestamp=0) is None


def test_parse_feed_payload_skips_bad_entries_and_keeps_order() -> None:
    payload = [
        _raw("00000001"),
        {"hash": "bad!"},
        _raw("00000002", file_name="b.ts"),
        None,
    ]

    parsed = parse_feed_payload(payload, default_timestamp=0)

    assert [item.hash for item in parsed.items] == ["00000001", "00000002"]
    assert parsed.skipped == 2


def test_parse_feed_payload_requires_a_list() -> None:
    parsed = parse_feed_payload({"hash": "00000001"}, default_timestamp=0)

    assert parsed.items == ()
    assert parsed.skipped == 0


def test_feed_cursor_yields_only_appended_items() -> None:
    cursor = FeedCursor()

    first = cursor.advance(_items("00000001", "00000002"))
    unchanged = cursor.advance(_items("00000001", "00000002"))
    appended = cursor.advance(_items("00000001", "00000002", "00000003", "00000004"))

    assert [item.hash for item in first] == ["00000001", "00000002"]
    assert unchanged == []
    assert [item.hash for item in appended] == ["00000003", "00000004"]
    assert cursor.last_hash == "00000004"


def test_feed_cursor_falls_back_to_unseen_hashes_after_rotation() -> None:
    cursor = FeedCursor()
    cursor.advance(_items("00000001", "00000002"))

    rotated = cursor.advance(_items("00000002", "00000005", "00000006")[1:])

    assert [item.hash for item in rotated] == ["00000005", "00000006"]


def test_feed_cursor_reset_returns_everything_again() -> None:
    cursor = FeedCursor()
    cursor.advance(_items("00000001"))
    cursor.reset()

    assert [item.hash for item in cursor.advance(_items("00000001"))] == ["00000001"]
    assert cursor.last_hash == "00000001"

"""
Tests for Canvas Kit cards and button dispatch
"""

from canvas import SubmitAction, created_card, linked_card, parse_action


def components(card):
    return card["canvas"]["content"]["components"]


def test_parse_action():
    assert parse_action("create_task") == SubmitAction.CREATE_TASK
    assert parse_action("submit_button") == SubmitAction.CREATE_TASK
    assert parse_action("sync_files_button") == SubmitAction.SYNC_FILES
    assert parse_action("refresh") == SubmitAction.REFRESH
    assert parse_action("something_else") is None
    assert parse_action(None) is None


def test_linked_card_buttons_round_trip_through_parse_action():
    buttons = [c for c in components(linked_card("task-1", "Resolved")) if c["type"] == "button"]
    assert [parse_action(b["id"]) for b in buttons] == [SubmitAction.SYNC_FILES, SubmitAction.REFRESH]


def test_created_card_field_count_message():
    texts = [c["text"] for c in components(created_card("Jane", "task-1", None, 0)) if c["type"] == "text"]
    assert "⚠ No mapped custom fields were synced to Asana" in texts

    texts = [c["text"] for c in components(created_card("Jane", "task-1", "✓ 1 attachment(s) uploaded successfully", 3))
             if c["type"] == "text"]
    assert "✓ Synced 3 custom fields to Asana" in texts
    assert "✓ 1 attachment(s) uploaded successfully" in texts

"""Unit tests for attachment list parsing and merging."""

import json
import os

import pytest

from worktrack.models.activity import ActivityType
from worktrack.services.attachments import (
    Attachment,
    attachment_file_path,
    merge_attachments,
    parse_attachments,
    parse_keep_list,
    remove_attachment,
)


def make_attachment(name, original=None):
    return Attachment(
        filename=name,
        original_name=original or name,
        path=f"/uploads/files/{name}",
        mimetype="application/pdf",
        size=10,
    )


def stored(*names):
    return [make_attachment(name).model_dump() for name in names]


def always_exists(attachment):
    return True


class TestParsing:
    """Tolerant reading of the JSON attachment column."""

    def test_parse_list(self):
        result = parse_attachments(stored("a.pdf", "b.pdf"))
        assert [a.filename for a in result] == ["a.pdf", "b.pdf"]

    def test_parse_json_string(self):
        result = parse_attachments(json.dumps(stored("a.pdf")))
        assert [a.filename for a in result] == ["a.pdf"]

    def test_parse_malformed_returns_empty(self):
        assert parse_attachments("not json") == []
        assert parse_attachments({"filename": "a.pdf"}) == []
        assert parse_attachments(None) == []

    def test_parse_skips_invalid_entries(self):
        raw = stored("a.pdf") + [{"filename": "broken"}]
        assert [a.filename for a in parse_attachments(raw)] == ["a.pdf"]

    def test_keep_list_accepts_objects_and_names(self):
        raw = json.dumps([{"filename": "a.pdf"}, "b.pdf"])
        assert parse_keep_list(raw) == {"a.pdf", "b.pdf"}

    def test_keep_list_missing_or_malformed_is_none(self):
        assert parse_keep_list(None) is None
        assert parse_keep_list("{oops") is None

    @pytest.mark.parametrize("raw", ["", "   ", "null", b""])
    def test_keep_list_blank_or_null_is_none(self, raw):
        assert parse_keep_list(raw) is None

    def test_keep_list_empty_means_keep_nothing(self):
        assert parse_keep_list("[]") == set()
        assert parse_keep_list([]) == set()


class TestMerge:
    """(keep ∩ stored ∩ on disk) ∪ uploaded."""

    def test_no_keep_list_keeps_everything(self):
        merge = merge_attachments(stored("a.pdf", "b.pdf"), None, exists=always_exists)

        assert [a.filename for a in merge.attachments] == ["a.pdf", "b.pdf"]
        assert merge.activities == []

    @pytest.mark.parametrize("keep", ["", "null"])
    def test_blank_keep_list_keeps_everything(self, keep):
        merge = merge_attachments(stored("a.pdf", "b.pdf"), keep, exists=always_exists)

        assert [a.filename for a in merge.attachments] == ["a.pdf", "b.pdf"]
        assert merge.activities == []

    def test_empty_keep_list_drops_everything(self):
        merge = merge_attachments(stored("a.pdf", "b.pdf"), "[]", exists=always_exists)

        assert merge.attachments == []
        assert [a.type for a in merge.activities] == [ActivityType.ATTACHMENT_DELETE] * 2

    def test_dropped_entries_are_recorded(self):
        merge = merge_attachments(
            stored("a.pdf", "b.pdf"), json.dumps(stored("a.pdf")), exists=always_exists
        )

        assert [a.filename for a in merge.attachments] == ["a.pdf"]
        assert len(merge.activities) == 1
        activity = merge.activities[0]
        assert activity.type == ActivityType.ATTACHMENT_DELETE
        assert activity.old_value == "b.pdf"

    def test_uploads_are_appended_and_recorded(self):
        upload = make_attachment("c.pdf", "报告.pdf")

        merge = merge_attachments(stored("a.pdf"), None, [upload], exists=always_exists)

        assert [a.filename for a in merge.attachments] == ["a.pdf", "c.pdf"]
        assert [a.type for a in merge.activities] == [ActivityType.ATTACHMENT_ADD]
        assert merge.activities[0].new_value == "报告.pdf"

    def test_keep_list_cannot_introduce_unknown_files(self):
        merge = merge_attachments(stored("a.pdf"), ["a.pdf", "ghost.pdf"], exists=always_exists)

        assert [a.filename for a in merge.attachments] == ["a.pdf"]

    def test_missing_files_are_dropped_without_record(self):
        merge = merge_attachments(
            stored("a.pdf", "b.pdf"),
            None,
            exists=lambda attachment: attachment.filename == "a.pdf",
        )

        assert [a.filename for a in merge.attachments] == ["a.pdf"]
        assert merge.activities == []

    def test_remove_single_attachment(self):
        merge = remove_attachment(stored("a.pdf", "b.pdf"), "a.pdf")

        assert [a.filename for a in merge.attachments] == ["b.pdf"]
        assert merge.activities[0].type == ActivityType.ATTACHMENT_DELETE

    def test_remove_unknown_attachment(self):
        assert remove_attachment(stored("a.pdf"), "zzz.pdf") is None


class TestFilePath:
    def test_path_inside_upload_dir(self, upload_root):
        path = attachment_file_path(make_attachment("a.pdf"))
        assert path == os.path.join(os.path.abspath(upload_root), "files", "a.pdf")

    def test_path_escaping_upload_dir(self):
        attachment = make_attachment("x")
        attachment.path = "/uploads/../../etc/passwd"
        assert attachment_file_path(attachment) is None

"""Integration tests for the work-item API.

Each test runs against a fresh SQLite schema through the ASGI app.
"""

import json
import os
from datetime import date

import pytest
from httpx import ASGITransport, AsyncClient

from worktrack.api import work_items
from worktrack.main import app

API = "/api/work-items"


async def create_item(client, headers, **fields):
    body = {"title": "登录页改版", "type": "需求"}
    body.update(fields)
    response = await client.post(API, json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def activities(client, headers, item_id):
    response = await client.get(f"{API}/{item_id}/activities", headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


class TestCreate:
    async def test_defaults_and_single_create_record(self, client, member, headers):
        item = await create_item(client, headers(member))

        assert item["status"] == "待处理"
        assert item["priority"] == "中"
        assert item["created_by_id"] == member.id
        assert item["attachments"] == []
        assert item["completion_date"] is None

        records = await activities(client, headers(member), item["id"])
        assert len(records) == 1
        assert records[0]["type"] == "create"
        assert records[0]["user"]["username"] == member.username

    async def test_missing_title_is_400(self, client, member, headers):
        response = await client.post(API, json={"type": "需求"}, headers=headers(member))

        assert response.status_code == 400
        body = response.json()
        assert body["detail"] == "请求参数无效"
        assert any(error["field"] == "title" for error in body["errors"])

    async def test_invalid_enum_is_400(self, client, member, headers):
        response = await client.post(
            API, json={"title": "x", "type": "不存在的类型"}, headers=headers(member)
        )
        assert response.status_code == 400

    async def test_malformed_json_body_is_400(self, client, member, headers):
        response = await client.post(
            API,
            content=b'{"title": ',
            headers={**headers(member), "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "请求体不是有效的 JSON"

    async def test_requires_authentication(self, client):
        response = await client.post(API, json={"title": "x", "type": "需求"})
        assert response.status_code == 401

    async def test_assignee_must_be_admin(self, client, member, other_member, headers):
        response = await client.post(
            API,
            json={"title": "x", "type": "需求", "assignee_id": other_member.id},
            headers=headers(member),
        )
        assert response.status_code == 400

    async def test_unknown_project_is_404(self, client, member, headers):
        response = await client.post(
            API, json={"title": "x", "type": "需求", "project_id": 999}, headers=headers(member)
        )
        assert response.status_code == 404

    async def test_multipart_with_attachments(self, client, member, headers, upload_root):
        response = await client.post(
            API,
            data={"title": "带附件", "type": "缺陷", "scheduled_start_date": ""},
            files=[("attachments", ("报告.pdf", b"%PDF-1.4 test", "application/pdf"))],
            headers=headers(member),
        )

        assert response.status_code == 201, response.text
        item = response.json()
        assert item["scheduled_start_date"] is None
        assert len(item["attachments"]) == 1
        attachment = item["attachments"][0]
        assert attachment["original_name"] == "报告.pdf"
        assert attachment["path"].startswith("/uploads/files/")
        assert os.path.isfile(os.path.join(upload_root, "files", attachment["filename"]))

        # Attachments added at creation are covered by the create record.
        records = await activities(client, headers(member), item["id"])
        assert [r["type"] for r in records] == ["create"]


class TestUpdate:
    async def test_status_to_completed(self, client, member, headers):
        item = await create_item(client, headers(member))

        response = await client.put(
            f"{API}/{item['id']}", json={"status": "已完成"}, headers=headers(member)
        )

        assert response.status_code == 200, response.text
        updated = response.json()
        assert updated["status"] == "已完成"
        assert updated["completion_date"] == date.today().isoformat()

        records = await activities(client, headers(member), item["id"])
        assert len(records) == 3
        new_records = records[:2]
        assert {r["type"] for r in new_records} == {"status_change", "update"}
        auto = next(r for r in new_records if r["type"] == "update")
        assert auto["field"] == "completion_date"

    async def test_completing_twice_changes_nothing(self, client, member, headers):
        item = await create_item(client, headers(member), status="进行中")
        url = f"{API}/{item['id']}"

        await client.put(url, json={"status": "已完成"}, headers=headers(member))
        response = await client.put(url, json={"status": "已完成"}, headers=headers(member))

        assert response.status_code == 200
        assert len(await activities(client, headers(member), item["id"])) == 3

    async def test_reopen_and_complete_again(self, client, member, headers):
        item = await create_item(client, headers(member))
        url = f"{API}/{item['id']}"

        for status in ("已完成", "待处理", "已完成"):
            response = await client.put(url, json={"status": status}, headers=headers(member))
            assert response.status_code == 200, response.text

        assert response.json()["completion_date"] == date.today().isoformat()
        records = await activities(client, headers(member), item["id"])
        assert len(records) == 6
        auto = [r for r in records if r["field"] == "completion_date"]
        assert len(auto) == 2
        assert all(r["type"] == "update" for r in auto)

    async def test_replaying_an_update_is_idempotent(self, client, member, headers):
        item = await create_item(client, headers(member))
        url = f"{API}/{item['id']}"
        body = {"title": "新标题", "priority": "高", "scheduled_start_date": "2024-03-01T00:00:00.000Z"}

        first = await client.put(url, json=body, headers=headers(member))
        second = await client.put(url, json=body, headers=headers(member))

        assert first.status_code == second.status_code == 200
        assert first.json()["scheduled_start_date"] == "2024-03-01"
        assert len(await activities(client, headers(member), item["id"])) == 4

    async def test_other_user_is_forbidden_without_side_effects(
        self, client, member, other_member, headers
    ):
        item = await create_item(client, headers(other_member))

        response = await client.put(
            f"{API}/{item['id']}", json={"status": "已完成"}, headers=headers(member)
        )

        assert response.status_code == 403
        current = (await client.get(f"{API}/{item['id']}", headers=headers(other_member))).json()
        assert current["status"] == "待处理"
        assert current["completion_date"] is None
        assert len(await activities(client, headers(other_member), item["id"])) == 1

    async def test_admin_may_update_any_item(self, client, member, admin, headers):
        item = await create_item(client, headers(member))

        response = await client.put(
            f"{API}/{item['id']}", json={"assignee_id": admin.id}, headers=headers(admin)
        )

        assert response.status_code == 200
        assert response.json()["assignee"]["username"] == admin.username
        records = await activities(client, headers(admin), item["id"])
        assert records[0]["type"] == "assignee_change"
        assert records[0]["user_id"] == admin.id
        assert admin.username in records[0]["description"]

    async def test_null_title_is_rejected(self, client, member, headers):
        item = await create_item(client, headers(member))

        response = await client.put(
            f"{API}/{item['id']}", json={"title": None}, headers=headers(member)
        )

        assert response.status_code == 400

    async def test_missing_item_is_404(self, client, member, headers):
        response = await client.put(f"{API}/999", json={"title": "x"}, headers=headers(member))
        assert response.status_code == 404


class TestTransaction:
    """Field changes and their activity records commit together."""

    @pytest.fixture
    async def failing_client(self, client, monkeypatch):
        async def record_then_fail(db, work_item_id, user_id, drafts):
            await db.flush()
            raise RuntimeError("activity store unavailable")

        monkeypatch.setattr(work_items, "record_drafts", record_then_fail)
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac

    async def test_failed_activity_write_rolls_back_fields(
        self, client, failing_client, member, headers
    ):
        item = await create_item(client, headers(member))

        response = await failing_client.put(
            f"{API}/{item['id']}",
            json={"title": "不应保存", "status": "已完成"},
            headers=headers(member),
        )

        assert response.status_code == 500
        assert response.json()["detail"] == "服务器错误"
        current = (await client.get(f"{API}/{item['id']}", headers=headers(member))).json()
        assert current["title"] == item["title"]
        assert current["status"] == "待处理"
        assert current["completion_date"] is None
        assert len(await activities(client, headers(member), item["id"])) == 1

    async def test_failed_update_removes_new_uploads(
        self, client, failing_client, member, headers, upload_root
    ):
        item = await create_item(client, headers(member))
        files_dir = os.path.join(upload_root, "files")
        os.makedirs(files_dir, exist_ok=True)
        before = set(os.listdir(files_dir))

        response = await failing_client.put(
            f"{API}/{item['id']}",
            data={"priority": "高"},
            files=[("attachments", ("c.txt", b"new", "text/plain"))],
            headers=headers(member),
        )

        assert response.status_code == 500
        assert set(os.listdir(files_dir)) == before
        current = (await client.get(f"{API}/{item['id']}", headers=headers(member))).json()
        assert current["attachments"] == []
        assert current["priority"] == "中"


class TestAttachments:
    async def upload(self, client, member, headers, names):
        files = [("attachments", (name, b"content", "text/plain")) for name in names]
        response = await client.post(
            API, data={"title": "附件测试", "type": "事务"}, files=files, headers=headers(member)
        )
        assert response.status_code == 201, response.text
        return response.json()

    async def test_keep_list_and_new_upload(self, client, member, headers):
        item = await self.upload(client, member, headers, ["a.txt", "b.txt"])
        keep = [a for a in item["attachments"] if a["original_name"] == "a.txt"]

        response = await client.put(
            f"{API}/{item['id']}",
            data={"existing_attachments": json.dumps(keep), "priority": "高"},
            files=[("attachments", ("c.txt", b"new", "text/plain"))],
            headers=headers(member),
        )

        assert response.status_code == 200, response.text
        names = [a["original_name"] for a in response.json()["attachments"]]
        assert names == ["a.txt", "c.txt"]

        records = await activities(client, headers(member), item["id"])
        types = sorted(r["type"] for r in records)
        assert types == ["attachment_add", "attachment_delete", "create", "update"]
        deleted = next(r for r in records if r["type"] == "attachment_delete")
        assert deleted["old_value"] == "b.txt"

    async def test_update_without_keep_list_keeps_attachments(self, client, member, headers):
        item = await self.upload(client, member, headers, ["a.txt"])

        response = await client.put(
            f"{API}/{item['id']}", json={"title": "只改标题"}, headers=headers(member)
        )

        assert len(response.json()["attachments"]) == 1

    @pytest.mark.parametrize("keep", ["", "null"])
    async def test_blank_keep_list_keeps_attachments(self, client, member, headers, keep):
        item = await self.upload(client, member, headers, ["a.txt", "b.txt"])

        response = await client.put(
            f"{API}/{item['id']}",
            data={"existing_attachments": keep, "priority": "高"},
            headers=headers(member),
        )

        assert response.status_code == 200, response.text
        assert [a["original_name"] for a in response.json()["attachments"]] == ["a.txt", "b.txt"]
        records = await activities(client, headers(member), item["id"])
        assert sorted(r["type"] for r in records) == ["create", "update"]

    async def test_too_many_files(self, client, member, headers):
        files = [("attachments", (f"{i}.txt", b"x", "text/plain")) for i in range(6)]
        response = await client.post(
            API, data={"title": "x", "type": "事务"}, files=files, headers=headers(member)
        )
        assert response.status_code == 400

    async def test_delete_attachment(self, client, member, headers):
        item = await self.upload(client, member, headers, ["a.txt", "b.txt"])
        filename = item["attachments"][0]["filename"]

        response = await client.delete(
            f"{API}/{item['id']}/attachments/{filename}", headers=headers(member)
        )

        assert response.status_code == 200
        assert [a["original_name"] for a in response.json()["attachments"]] == ["b.txt"]
        records = await activities(client, headers(member), item["id"])
        assert records[0]["type"] == "attachment_delete"

    async def test_delete_unknown_attachment(self, client, member, headers):
        item = await self.upload(client, member, headers, ["a.txt"])

        response = await client.delete(
            f"{API}/{item['id']}/attachments/nope.txt", headers=headers(member)
        )

        assert response.status_code == 404


class TestCommentsAndQueries:
    async def test_comment_is_recorded(self, client, member, headers):
        item = await create_item(client, headers(member))

        response = await client.post(
            f"{API}/{item['id']}/comments", json={"content": "看一下"}, headers=headers(member)
        )

        assert response.status_code == 201
        assert response.json()["username"] == member.username
        detail = (await client.get(f"{API}/{item['id']}", headers=headers(member))).json()
        assert [c["content"] for c in detail["comments"]] == ["看一下"]
        records = await activities(client, headers(member), item["id"])
        assert records[0]["type"] == "comment"

    async def test_blank_comment_is_rejected(self, client, member, headers):
        item = await create_item(client, headers(member))
        response = await client.post(
            f"{API}/{item['id']}/comments", json={"content": "   "}, headers=headers(member)
        )
        assert response.status_code == 400

    async def test_users_only_list_their_own_items(self, client, member, other_member, admin, headers):
        await create_item(client, headers(member), title="mine")
        await create_item(client, headers(other_member), title="theirs")

        mine = (await client.get(API, headers=headers(member))).json()
        everything = (await client.get(API, headers=headers(admin))).json()

        assert [i["title"] for i in mine] == ["mine"]
        assert len(everything) == 2

    async def test_filters(self, client, member, headers):
        await create_item(client, headers(member), title="缺陷A", type="缺陷", priority="高")
        await create_item(client, headers(member), title="需求B")

        response = await client.get(API, params={"type": "缺陷"}, headers=headers(member))
        assert [i["title"] for i in response.json()] == ["缺陷A"]

        response = await client.get(API, params={"title": "需求"}, headers=headers(member))
        assert [i["title"] for i in response.json()] == ["需求B"]

    async def test_pending_schedule(self, client, member, admin, headers):
        await create_item(client, headers(member), title="待排期", assignee_id=admin.id)
        await create_item(
            client,
            headers(member),
            title="已排期",
            assignee_id=admin.id,
            scheduled_start_date="2024-03-01",
            scheduled_end_date="2024-03-05",
        )

        response = await client.get(f"{API}/pending-schedule", headers=headers(admin))
        assert [i["title"] for i in response.json()] == ["待排期"]

        response = await client.get(f"{API}/pending-schedule", headers=headers(member))
        assert response.status_code == 403

    async def test_delete_by_creator(self, client, member, other_member, headers):
        item = await create_item(client, headers(member))

        forbidden = await client.delete(f"{API}/{item['id']}", headers=headers(other_member))
        allowed = await client.delete(f"{API}/{item['id']}", headers=headers(member))

        assert forbidden.status_code == 403
        assert allowed.status_code == 200
        assert (await client.get(f"{API}/{item['id']}", headers=headers(member))).status_code == 404


class TestExport:
    async def test_export_and_download(self, client, member, headers):
        await create_item(client, headers(member))

        response = await client.get(f"{API}/export", headers=headers(member))

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["count"] == 1
        filename = body["download_url"].rsplit("/", 1)[-1]

        download = await client.get(f"{API}/download/{filename}", headers=headers(member))
        assert download.status_code == 200
        assert download.content[:2] == b"PK"

    async def test_export_nothing(self, client, member, headers):
        response = await client.get(f"{API}/export", headers=headers(member))
        assert response.status_code == 404

    @pytest.mark.parametrize("filename", ["missing.xlsx", "bad name.xlsx"])
    async def test_download_rejects_unknown_files(self, client, member, headers, filename):
        response = await client.get(f"{API}/download/{filename}", headers=headers(member))
        assert response.status_code == 404

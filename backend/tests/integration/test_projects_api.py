"""Integration tests for the project API."""

API = "/api/projects"


async def create_project(client, headers, **fields):
    body = {"name": "官网改版", "start_date": "2024-03-01", "end_date": "2024-04-01"}
    body.update(fields)
    response = await client.post(API, json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestProjects:
    async def test_admin_creates_project(self, client, admin, headers):
        project = await create_project(client, headers(admin))

        assert project["status"] == "待处理"
        assert project["creator"]["username"] == admin.username

    async def test_users_cannot_create(self, client, member, headers):
        response = await client.post(API, json={"name": "x"}, headers=headers(member))
        assert response.status_code == 403

    async def test_end_before_start_is_rejected(self, client, admin, headers):
        response = await client.post(
            API,
            json={"name": "x", "start_date": "2024-03-10", "end_date": "2024-03-01"},
            headers=headers(admin),
        )
        assert response.status_code == 400

    async def test_detail_includes_work_items(self, client, admin, headers):
        project = await create_project(client, headers(admin))
        await client.post(
            "/api/work-items",
            json={"title": "首页", "type": "需求", "project_id": project["id"]},
            headers=headers(admin),
        )

        response = await client.get(f"{API}/{project['id']}", headers=headers(admin))

        assert response.status_code == 200
        assert [i["title"] for i in response.json()["work_items"]] == ["首页"]

    async def test_update_by_creator_only(self, client, admin, member, headers):
        project = await create_project(client, headers(admin))

        forbidden = await client.put(
            f"{API}/{project['id']}", json={"name": "改名"}, headers=headers(member)
        )
        allowed = await client.put(
            f"{API}/{project['id']}", json={"name": "改名", "status": "进行中"}, headers=headers(admin)
        )

        assert forbidden.status_code == 403
        assert allowed.status_code == 200
        assert allowed.json()["name"] == "改名"
        assert allowed.json()["status"] == "进行中"

    async def test_update_cannot_invert_dates(self, client, admin, headers):
        project = await create_project(client, headers(admin))

        response = await client.put(
            f"{API}/{project['id']}", json={"end_date": "2024-02-01"}, headers=headers(admin)
        )

        assert response.status_code == 400

    async def test_delete_blocked_while_work_items_remain(self, client, admin, headers):
        project = await create_project(client, headers(admin))
        await client.post(
            "/api/work-items",
            json={"title": "首页", "type": "需求", "project_id": project["id"]},
            headers=headers(admin),
        )

        response = await client.delete(f"{API}/{project['id']}", headers=headers(admin))

        assert response.status_code == 400
        assert response.json()["work_item_count"] == 1
        assert (await client.get(f"{API}/{project['id']}", headers=headers(admin))).status_code == 200

    async def test_delete_empty_project(self, client, admin, headers):
        project = await create_project(client, headers(admin))

        response = await client.delete(f"{API}/{project['id']}", headers=headers(admin))

        assert response.status_code == 200
        assert (await client.get(f"{API}/{project['id']}", headers=headers(admin))).status_code == 404

    async def test_list_with_search(self, client, admin, headers):
        await create_project(client, headers(admin), name="官网改版")
        await create_project(client, headers(admin), name="会员系统")

        response = await client.get(API, params={"search": "会员"}, headers=headers(admin))

        assert [p["name"] for p in response.json()] == ["会员系统"]

async def _create_group(client, headers, name="Photographers", is_private=False):
    response = await client.post(
        "/api/groups/",
        json={"name": name, "description": "All about cameras", "isPrivate": is_private},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]["group"]


async def _members_count(client, group_id, headers):
    response = await client.get(f"/api/groups/{group_id}", headers=headers)
    return response.json()["data"]["group"]["membersCount"]


async def test_create_group_makes_owner_admin(client, register):
    owner, _, headers = await register("alice")

    group = await _create_group(client, headers)

    assert group["ownerId"] == owner["id"]
    assert group["membersCount"] == 1
    assert group["myRole"] == "admin"
    assert group["isPrivate"] is False

    response = await client.get(f"/api/groups/{group['id']}/members", headers=headers)
    members = response.json()["data"]["members"]
    assert [(m["username"], m["role"]) for m in members] == [("alice", "admin")]


async def test_private_group_rejects_join(client, register):
    _, _, alice_headers = await register("alice")
    _, _, bob_headers = await register("bob")
    group = await _create_group(client, alice_headers, is_private=True)

    response = await client.post(f"/api/groups/{group['id']}/join", headers=bob_headers)
    assert response.status_code == 403
    assert await _members_count(client, group["id"], alice_headers) == 1


async def test_join_is_idempotent(client, register):
    _, _, alice_headers = await register("alice")
    _, _, bob_headers = await register("bob")
    group = await _create_group(client, alice_headers)

    response = await client.post(f"/api/groups/{group['id']}/join", headers=bob_headers)
    assert response.status_code == 200
    assert response.json()["data"]["joined"] is True

    response = await client.post(f"/api/groups/{group['id']}/join", headers=bob_headers)
    assert response.status_code == 200
    assert response.json()["data"]["joined"] is False

    assert await _members_count(client, group["id"], bob_headers) == 2

    response = await client.get(f"/api/groups/{group['id']}", headers=bob_headers)
    assert response.json()["data"]["group"]["myRole"] == "member"

    response = await client.post("/api/groups/9999/join", headers=bob_headers)
    assert response.status_code == 404


async def test_only_admin_adds_members(client, register):
    _, _, alice_headers = await register("alice")
    _, _, bob_headers = await register("bob")
    carol, _, _ = await register("carol")
    group = await _create_group(client, alice_headers, is_private=True)
    url = f"/api/groups/{group['id']}/members"

    response = await client.post(url, json={"userId": carol["id"]}, headers=bob_headers)
    assert response.status_code == 403

    response = await client.post(url, json={"userId": carol["id"]}, headers=alice_headers)
    assert response.status_code == 200
    assert response.json()["data"]["added"] is True

    response = await client.post(url, json={"userId": carol["id"]}, headers=alice_headers)
    assert response.json()["data"]["added"] is False

    response = await client.post(url, json={"userId": 9999}, headers=alice_headers)
    assert response.status_code == 404

    assert await _members_count(client, group["id"], alice_headers) == 2


async def test_remove_member_rules(client, register):
    _, _, alice_headers = await register("alice")
    bob, _, bob_headers = await register("bob")
    carol, _, carol_headers = await register("carol")
    group = await _create_group(client, alice_headers)
    for headers in (bob_headers, carol_headers):
        await client.post(f"/api/groups/{group['id']}/join", headers=headers)
    base = f"/api/groups/{group['id']}/members"

    # A plain member cannot remove someone else
    response = await client.delete(f"{base}/{carol['id']}", headers=bob_headers)
    assert response.status_code == 403

    # Members may leave
    response = await client.delete(f"{base}/{bob['id']}", headers=bob_headers)
    assert response.status_code == 200

    # Admins may remove anyone
    response = await client.delete(f"{base}/{carol['id']}", headers=alice_headers)
    assert response.status_code == 200

    response = await client.delete(f"{base}/{carol['id']}", headers=alice_headers)
    assert response.status_code == 404

    assert await _members_count(client, group["id"], alice_headers) == 1


async def test_update_and_delete_require_admin(client, register, media):
    _, _, alice_headers = await register("alice")
    _, _, bob_headers = await register("bob")
    group = await _create_group(client, alice_headers)
    await client.post(f"/api/groups/{group['id']}/join", headers=bob_headers)

    response = await client.put(f"/api/groups/{group['id']}", json={"name": "Mine now"}, headers=bob_headers)
    assert response.status_code == 403

    response = await client.put(f"/api/groups/{group['id']}", json={"isPrivate": True}, headers=alice_headers)
    assert response.status_code == 200
    updated = response.json()["data"]["group"]
    assert updated["isPrivate"] is True
    assert updated["name"] == "Photographers"

    response = await client.put(f"/api/groups/{group['id']}", json={"name": "   "}, headers=alice_headers)
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "name"

    response = await client.put(f"/api/groups/{group['id']}", json={"name": "  Lens Club  "}, headers=alice_headers)
    assert response.status_code == 200
    assert response.json()["data"]["group"]["name"] == "Lens Club"

    response = await client.post(
        f"/api/groups/{group['id']}/posts",
        files={"image": ("photo.jpg", b"data", "image/jpeg")},
        data={"caption": "group shot"},
        headers=bob_headers,
    )
    assert response.status_code == 201

    response = await client.delete(f"/api/groups/{group['id']}", headers=bob_headers)
    assert response.status_code == 403

    response = await client.delete(f"/api/groups/{group['id']}", headers=alice_headers)
    assert response.status_code == 200
    assert media.deleted == media.uploaded

    response = await client.get(f"/api/groups/{group['id']}", headers=alice_headers)
    assert response.status_code == 404


async def test_group_posts_membership_and_visibility(client, register, media):
    _, _, alice_headers = await register("alice")
    _, _, bob_headers = await register("bob")
    _, _, carol_headers = await register("carol")
    group = await _create_group(client, alice_headers, is_private=True)
    await client.post("/api/users/alice/follow", headers=carol_headers)
    url = f"/api/groups/{group['id']}/posts"

    response = await client.post(url, data={"caption": "let me in"}, headers=bob_headers)
    assert response.status_code == 403

    # Image is optional for group posts
    response = await client.post(url, data={"caption": "text only"}, headers=alice_headers)
    assert response.status_code == 201
    post = response.json()["data"]["post"]
    assert post["groupId"] == group["id"]
    assert post["imageUrl"] is None
    assert media.uploaded == []

    response = await client.get(url, headers=alice_headers)
    data = response.json()["data"]
    assert [p["caption"] for p in data["posts"]] == ["text only"]
    assert data["pagination"]["totalPosts"] == 1

    response = await client.get(url, headers=bob_headers)
    assert response.status_code == 403
    response = await client.get(f"/api/posts/{post['id']}", headers=bob_headers)
    assert response.status_code == 403
    response = await client.get(f"/api/posts/{post['id']}", headers=alice_headers)
    assert response.status_code == 200

    # Group posts stay out of the top-level listings
    response = await client.get("/api/posts/user/alice")
    assert response.json()["data"]["posts"] == []
    response = await client.get("/api/posts/feed/timeline", headers=carol_headers)
    assert response.json()["data"]["posts"] == []


async def test_delete_group_post_by_author_or_admin(client, register):
    _, _, alice_headers = await register("alice")
    _, _, bob_headers = await register("bob")
    _, _, carol_headers = await register("carol")
    group = await _create_group(client, alice_headers)
    for headers in (bob_headers, carol_headers):
        await client.post(f"/api/groups/{group['id']}/join", headers=headers)
    url = f"/api/groups/{group['id']}/posts"

    first = (await client.post(url, data={"caption": "one"}, headers=bob_headers)).json()["data"]["post"]
    second = (await client.post(url, data={"caption": "two"}, headers=bob_headers)).json()["data"]["post"]

    response = await client.delete(f"{url}/{first['id']}", headers=carol_headers)
    assert response.status_code == 403

    response = await client.delete(f"{url}/{first['id']}", headers=bob_headers)
    assert response.status_code == 200

    response = await client.delete(f"{url}/{second['id']}", headers=alice_headers)
    assert response.status_code == 200

    response = await client.delete(f"{url}/{second['id']}", headers=alice_headers)
    assert response.status_code == 404


async def test_group_listings(client, register):
    alice, _, alice_headers = await register("alice")
    _, _, bob_headers = await register("bob")
    public = await _create_group(client, alice_headers, name="Open")
    hidden = await _create_group(client, alice_headers, name="Secret", is_private=True)

    response = await client.get("/api/groups/", headers=bob_headers)
    assert [g["id"] for g in response.json()["data"]["groups"]] == [public["id"]]

    response = await client.get("/api/groups/", headers=alice_headers)
    assert [g["id"] for g in response.json()["data"]["groups"]] == [hidden["id"], public["id"]]

    response = await client.get(f"/api/groups/user/{alice['id']}", headers=bob_headers)
    groups = response.json()["data"]["groups"]
    assert {g["name"]: g["myRole"] for g in groups} == {"Secret": "admin", "Open": "admin"}
    assert groups[0]["owner"]["username"] == "alice"

async def test_create_post_uploads_image(client, register, media, create_post):
    user, _, headers = await register("alice")

    post = await create_post(headers, caption="first post")

    assert post["caption"] == "first post"
    assert post["userId"] == user["id"]
    assert post["likesCount"] == 0
    assert post["commentsCount"] == 0
    assert post["user"]["username"] == "alice"
    assert len(media.uploaded) == 1
    assert media.uploaded[0].startswith(f"fastgram/posts/post_{user['id']}_")
    assert post["imageUrl"] == f"https://media.test/fastgram/{media.uploaded[0]}.jpg"


async def test_create_post_requires_image_and_auth(client, register):
    _, _, headers = await register("alice")

    response = await client.post("/api/posts/", data={"caption": "no image"}, headers=headers)
    assert response.status_code == 400

    response = await client.post(
        "/api/posts/", files={"image": ("photo.jpg", b"data", "image/jpeg")}, data={"caption": "x"}
    )
    assert response.status_code == 401


async def test_failed_upload_leaves_no_post(client, register, media):
    _, _, headers = await register("alice")
    media.fail_uploads = True

    response = await client.post(
        "/api/posts/",
        files={"image": ("photo.jpg", b"data", "image/jpeg")},
        data={"caption": "lost"},
        headers=headers,
    )
    assert response.status_code == 502

    response = await client.get("/api/posts/user/alice")
    assert response.json()["data"]["pagination"]["totalPosts"] == 0


async def test_get_update_and_delete_post(client, register, media, create_post):
    _, _, alice_headers = await register("alice")
    _, _, bob_headers = await register("bob")
    post = await create_post(alice_headers)

    response = await client.get(f"/api/posts/{post['id']}")
    assert response.status_code == 200
    assert response.json()["data"]["post"]["user"]["username"] == "alice"

    response = await client.put(f"/api/posts/{post['id']}", json={"caption": "hijacked"}, headers=bob_headers)
    assert response.status_code == 403
    response = await client.delete(f"/api/posts/{post['id']}", headers=bob_headers)
    assert response.status_code == 403

    response = await client.put(f"/api/posts/{post['id']}", json={"caption": "edited"}, headers=alice_headers)
    assert response.status_code == 200
    assert response.json()["data"]["post"]["caption"] == "edited"

    response = await client.delete(f"/api/posts/{post['id']}", headers=alice_headers)
    assert response.status_code == 200
    assert media.deleted == media.uploaded

    response = await client.get(f"/api/posts/{post['id']}")
    assert response.status_code == 404
    response = await client.delete(f"/api/posts/{post['id']}", headers=alice_headers)
    assert response.status_code == 404


async def test_like_counter_tracks_likes(client, register, create_post):
    _, _, alice_headers = await register("alice")
    _, _, bob_headers = await register("bob")
    post = await create_post(alice_headers)
    url = f"/api/posts/{post['id']}/like"

    response = await client.post(url, headers=alice_headers)
    assert response.status_code == 200
    assert response.json()["data"]["likesCount"] == 1

    response = await client.post(url, headers=bob_headers)
    assert response.json()["data"]["likesCount"] == 2

    response = await client.post(url, headers=bob_headers)
    assert response.status_code == 409

    response = await client.delete(url, headers=bob_headers)
    assert response.status_code == 200
    assert response.json()["data"]["likesCount"] == 1

    response = await client.get(f"/api/posts/{post['id']}")
    assert response.json()["data"]["post"]["likesCount"] == 1


async def test_unlike_without_like_is_404_and_counter_stays_non_negative(client, register, create_post):
    _, _, headers = await register("alice")
    post = await create_post(headers)

    response = await client.delete(f"/api/posts/{post['id']}/like", headers=headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Like not found"

    response = await client.get(f"/api/posts/{post['id']}")
    assert response.json()["data"]["post"]["likesCount"] == 0

    response = await client.post("/api/posts/9999/like", headers=headers)
    assert response.status_code == 404


async def test_comments_keep_counter_in_step(client, register, create_post):
    _, _, alice_headers = await register("alice")
    _, _, bob_headers = await register("bob")
    post = await create_post(alice_headers)
    url = f"/api/posts/{post['id']}/comments"

    response = await client.post(url, json={"commentText": "  nice shot  "}, headers=bob_headers)
    assert response.status_code == 201
    first = response.json()["data"]["comment"]
    assert first["commentText"] == "nice shot"
    assert first["user"]["username"] == "bob"

    response = await client.post(url, json={"comment_text": "thanks"}, headers=alice_headers)
    assert response.status_code == 201

    response = await client.post(url, json={"commentText": "   "}, headers=alice_headers)
    assert response.status_code == 400

    response = await client.get(url)
    data = response.json()["data"]
    assert [c["commentText"] for c in data["comments"]] == ["thanks", "nice shot"]
    assert data["pagination"]["totalComments"] == 2
    assert data["pagination"]["totalPages"] == 1

    response = await client.get(f"/api/posts/{post['id']}")
    assert response.json()["data"]["post"]["commentsCount"] == 2

    # Only the author may edit or delete a comment
    comment_url = f"{url}/{first['id']}"
    response = await client.put(comment_url, json={"commentText": "edited"}, headers=alice_headers)
    assert response.status_code == 403
    response = await client.delete(comment_url, headers=alice_headers)
    assert response.status_code == 403

    response = await client.put(comment_url, json={"commentText": "great shot"}, headers=bob_headers)
    assert response.status_code == 200
    assert response.json()["data"]["comment"]["commentText"] == "great shot"

    response = await client.delete(comment_url, headers=bob_headers)
    assert response.status_code == 200

    response = await client.get(f"/api/posts/{post['id']}")
    assert response.json()["data"]["post"]["commentsCount"] == 1


async def test_deleting_post_removes_likes_and_comments(client, register, create_post, db_session):
    from sqlalchemy import select, func
    from app.models.social import Like, Comment

    _, _, alice_headers = await register("alice")
    _, _, bob_headers = await register("bob")
    post = await create_post(alice_headers)

    await client.post(f"/api/posts/{post['id']}/like", headers=bob_headers)
    await client.post(f"/api/posts/{post['id']}/comments", json={"commentText": "hi"}, headers=bob_headers)

    response = await client.delete(f"/api/posts/{post['id']}", headers=alice_headers)
    assert response.status_code == 200

    likes = await db_session.scalar(select(func.count()).select_from(Like).filter(Like.post_id == post["id"]))
    comments = await db_session.scalar(
        select(func.count()).select_from(Comment).filter(Comment.post_id == post["id"])
    )
    assert likes == 0
    assert comments == 0

    response = await client.get(f"/api/posts/{post['id']}/comments")
    assert response.status_code == 404


async def test_user_posts_listing(client, register, create_post):
    _, _, alice_headers = await register("alice")
    _, _, bob_headers = await register("bob")
    for caption in ("one", "two", "three"):
        await create_post(alice_headers, caption=caption)

    response = await client.get("/api/posts/user/alice?page=1&limit=2", headers=bob_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert [p["caption"] for p in data["posts"]] == ["three", "two"]
    assert all(p["isLiked"] is False for p in data["posts"])
    assert data["pagination"] == {"page": 1, "limit": 2, "totalPages": 2, "totalPosts": 3}

    response = await client.get("/api/posts/user/nobody")
    assert response.status_code == 404


async def test_feed_shows_followed_posts_with_like_flag(client, register, create_post):
    _, _, alice_headers = await register("alice")
    _, _, bob_headers = await register("bob")
    _, _, carol_headers = await register("carol")

    await client.post("/api/users/bob/follow", headers=alice_headers)
    own = await create_post(alice_headers, caption="mine")
    liked = await create_post(bob_headers, caption="bob liked")
    unliked = await create_post(bob_headers, caption="bob plain")
    await create_post(carol_headers, caption="stranger")

    await client.post(f"/api/posts/{liked['id']}/like", headers=alice_headers)

    response = await client.get("/api/posts/feed/timeline", headers=alice_headers)
    assert response.status_code == 200
    posts = response.json()["data"]["posts"]
    assert [p["id"] for p in posts] == [unliked["id"], liked["id"], own["id"]]
    flags = {p["id"]: p["isLiked"] for p in posts}
    assert flags == {unliked["id"]: False, liked["id"]: True, own["id"]: False}
    assert {p["id"]: p["likesCount"] for p in posts}[liked["id"]] == 1

    response = await client.get("/api/posts/feed/timeline")
    assert response.status_code == 401

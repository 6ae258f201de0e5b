import pytest


def _post(c, title="Lift maintenance", content="The lift stops on Monday", prefix="/api/posts"):
    return c.post(prefix, json={"title": title, "content": content})


@pytest.mark.parametrize("prefix", ["/posts", "/api/posts"])
def test_create_and_list_on_both_mounts(seed, login, prefix):
    rita = login("rita@a.test")
    r = _post(rita, title="First", prefix=prefix)
    assert r.status_code == 201
    assert r.json["author_name"] == "Rita Resident"
    assert r.json["author_role"] == "RESIDENT"
    assert r.json["community_code"] == "A-001"
    assert r.json["can_delete"] is True
    _post(rita, title="Second", prefix=prefix)

    r = rita.get(f"{prefix}/community/A-001")
    assert r.status_code == 200
    assert [p["title"] for p in r.json["content"]] == ["Second", "First"]


def test_post_validation(seed, login):
    rita = login("rita@a.test")
    r = _post(rita, title="", content="")
    assert r.status_code == 400
    assert set(r.json["details"]) == {"title", "content"}
    assert _post(rita, title="x" * 256).status_code == 400
    assert _post(rita, content="x" * 2001).status_code == 400


def test_listing_other_community_is_forbidden_except_for_admin(seed, login):
    _post(login("bruno@b.test"), title="Luna news")

    assert login("rita@a.test").get("/api/posts/community/B-001").status_code == 403
    assert login("rita@a.test").get("/api/posts/community/NOPE").status_code == 404

    r = login("admin@a.test").get("/api/posts/community/B-001")
    assert r.status_code == 200
    assert r.json["content"][0]["title"] == "Luna news"
    assert r.json["content"][0]["can_delete"] is False


def test_delete_rules(seed, login):
    post_id = _post(login("rita@a.test")).json["id"]

    assert login("ramon@a.test").delete(f"/api/posts/{post_id}").status_code == 403
    assert login("pres@b.test").delete(f"/api/posts/{post_id}").status_code == 403
    assert login("admin@a.test").delete(f"/api/posts/{post_id}").status_code == 403
    assert login("pres@a.test").delete(f"/api/posts/{post_id}").status_code == 200
    assert login("pres@a.test").delete(f"/api/posts/{post_id}").status_code == 404

    own_id = _post(login("ramon@a.test")).json["id"]
    assert login("ramon@a.test").delete(f"/posts/{own_id}").status_code == 200


def test_president_sees_can_delete_on_residents_posts(seed, login):
    _post(login("rita@a.test"))
    r = login("pres@a.test").get("/api/posts/community/A-001")
    assert r.json["content"][0]["can_delete"] is True
    r = login("ramon@a.test").get("/api/posts/community/A-001")
    assert r.json["content"][0]["can_delete"] is False

from datetime import datetime, timedelta

from sqlmodel import select

from organizer.models import Family, JoinRequest, User

from conftest import auth_headers

BOB = auth_headers("bob", "Bob", "Jones")
CAROL = auth_headers("carol", "Carol", "Lee")


def create_family(client, name="Smiths"):
    res = client.post("/api/family", json={"name": name})
    assert res.status_code == 200
    return res.json()["family"]


def invite_code(client):
    res = client.post("/api/family/invite")
    assert res.status_code == 200
    return res.json()["inviteCode"]


def user_id(client, headers=None):
    return client.get("/api/user", headers=headers).json()["user"]["id"]


def test_user_is_provisioned_from_identity_headers(client):
    res = client.get("/api/user")
    assert res.status_code == 200
    user = res.json()["user"]
    assert (user["firstName"], user["lastName"], user["email"]) == ("Alice", "Smith", "alice@example.com")
    assert user["family"] is None

    assert client.get("/api/user").json()["user"]["id"] == user["id"]
    assert client.get("/api/user", headers={"X-Auth-User-Id": ""}).status_code == 401


def test_profile_update(client):
    res = client.put("/api/user/profile", json={"firstName": "Ally", "role": "COOK"})
    assert res.json()["user"] == {"id": 1, "name": "Ally Smith", "role": "COOK"}
    assert client.put("/api/user/profile", json={"role": "CHEF"}).status_code == 400


def test_create_and_read_family(client):
    assert client.get("/api/family").json()["hasFamily"] is False

    family = create_family(client)
    assert family["name"] == "Smiths"
    assert family["owner"] == {"name": "Alice Smith", "isMe": True}
    assert [m["familyRole"] for m in family["members"]] == ["OWNER"]

    res = client.post("/api/family", json={"name": "Second"})
    assert res.status_code == 400
    assert res.json()["detail"] == "User already has a family"
    assert client.post("/api/family", json={"name": "  "}, headers=BOB).status_code == 400


def test_feature_routes_create_a_default_family(client):
    client.get("/api/mealPlan")
    family = client.get("/api/family").json()["family"]
    assert family["name"] == "Alice's Family"


def test_rename_and_delete_family(client, session):
    create_family(client)
    res = client.put("/api/family", json={"name": "The Smiths"})
    assert res.json()["family"]["name"] == "The Smiths"

    res = client.delete("/api/family")
    assert res.json()["success"] is True
    assert client.get("/api/family").json()["hasFamily"] is False
    assert session.exec(select(Family)).all() == []


def test_invite_and_join(client):
    create_family(client)
    code = invite_code(client)

    res = client.post("/api/family/join", json={"inviteCode": code}, headers=BOB)
    assert res.status_code == 200
    assert res.json()["family"]["name"] == "Smiths"

    members = client.get("/api/family/members").json()["members"]
    assert [(m["name"], m["familyRole"], m["role"]) for m in members] == [
        ("Alice Smith", "OWNER", "PARENT"),
        ("Bob Jones", "MEMBER", "PARENT"),
    ]

    res = client.post("/api/family/join", json={"inviteCode": code}, headers=BOB)
    assert res.status_code == 400
    assert res.json()["detail"] == "User already belongs to a family"


def test_only_owner_manages_invites(client):
    create_family(client)
    code = invite_code(client)
    client.post("/api/family/join", json={"inviteCode": code}, headers=BOB)

    res = client.post("/api/family/invite", headers=BOB)
    assert res.status_code == 403
    assert res.json()["detail"] == "Only family owner can manage invite codes"

    assert client.delete("/api/family/invite").status_code == 200
    res = client.post("/api/family/join", json={"inviteCode": code}, headers=CAROL)
    assert res.json()["detail"] == "Invalid or expired invite code"


def test_expired_invite_code_is_rejected(client, session):
    create_family(client)
    code = invite_code(client)
    family = session.exec(select(Family)).one()
    family.invite_expiry = datetime.utcnow() - timedelta(minutes=1)
    session.add(family)
    session.commit()

    res = client.post("/api/family/join", json={"inviteCode": code}, headers=BOB)
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid or expired invite code"
    assert client.post("/api/family/join", json={}, headers=BOB).json()["detail"] == "Invite code is required"


def test_join_respects_member_limit(client, session):
    create_family(client)
    code = invite_code(client)
    family = session.exec(select(Family)).one()
    family.max_members = 1
    session.add(family)
    session.commit()

    res = client.post("/api/family/join", json={"inviteCode": code}, headers=BOB)
    assert res.status_code == 400
    assert res.json()["detail"] == "Family has reached maximum member limit"


def test_join_request_approval(client):
    create_family(client)
    code = invite_code(client)

    res = client.post("/api/family/join-requests", json={"inviteCode": code}, headers=BOB)
    assert res.json()["joinRequest"]["status"] == "PENDING"
    res = client.post("/api/family/join-requests", json={"inviteCode": code}, headers=BOB)
    assert res.json()["detail"] == "Join request already pending"

    requests = client.get("/api/family/join").json()["joinRequests"]
    assert [r["user"]["name"] for r in requests] == ["Bob Jones"]

    res = client.put("/api/family/join", json={"requestId": requests[0]["id"], "action": "approve"})
    assert res.json()["message"] == "Join request approved successfully"
    assert client.get("/api/family/join").json()["joinRequests"] == []
    assert client.get("/api/user", headers=BOB).json()["user"]["family"]["name"] == "Smiths"


def test_join_request_rejection(client, session):
    create_family(client)
    code = invite_code(client)
    request_id = client.post("/api/family/join-requests", json={"inviteCode": code}, headers=BOB).json()["joinRequest"]["id"]

    assert client.put("/api/family/join", json={"requestId": request_id, "action": "MAYBE"}).status_code == 400
    res = client.put("/api/family/join", json={"requestId": request_id, "action": "REJECT"})
    assert res.json()["joinRequest"]["status"] == "REJECTED"
    assert client.get("/api/user", headers=BOB).json()["user"]["familyId"] is None

    res = client.put("/api/family/join", json={"requestId": request_id, "action": "APPROVE"})
    assert res.status_code == 404
    assert session.get(JoinRequest, request_id).responded_at is not None


def test_member_roles(client):
    create_family(client)
    client.post("/api/family/join", json={"inviteCode": invite_code(client)}, headers=BOB)
    bob_id = user_id(client, BOB)
    alice_id = user_id(client)

    res = client.put("/api/family/members/role", json={"memberId": bob_id, "role": "ADMIN"})
    assert res.status_code == 200
    members = {m["id"]: m for m in client.get("/api/family/members").json()["members"]}
    assert members[bob_id]["familyRole"] == "ADMIN"

    assert client.put("/api/family/members/role", json={"memberId": bob_id, "role": "OWNER"}).status_code == 400
    res = client.put("/api/family/members/role", json={"memberId": alice_id, "role": "MEMBER"})
    assert res.status_code == 403
    assert res.json()["detail"] == "Cannot change owner's role"
    res = client.put("/api/family/members/role", json={"memberId": alice_id, "role": "ADMIN"}, headers=BOB)
    assert res.status_code == 403


def test_remove_member(client, session):
    create_family(client)
    client.post("/api/family/join", json={"inviteCode": invite_code(client)}, headers=BOB)
    bob_id = user_id(client, BOB)
    alice_id = user_id(client)

    res = client.request("DELETE", "/api/family/members", json={"memberId": alice_id}, headers=BOB)
    assert res.status_code == 403
    res = client.request("DELETE", "/api/family/members", json={"memberId": alice_id})
    assert res.json()["detail"] == "Cannot remove family owner"
    res = client.request("DELETE", "/api/family/members", json={"memberId": 999})
    assert res.status_code == 404

    res = client.request("DELETE", "/api/family/members", json={"memberId": bob_id})
    assert res.json()["success"] is True
    assert session.get(User, bob_id).family_id is None
    assert len(client.get("/api/family/members").json()["members"]) == 1


def test_families_do_not_see_each_other(client):
    client.post("/api/mealPlan", json={"weekStart": "2025-01-06", "mealPlan": {"MONDAY": {"LUNCH": "Pasta"}}})
    grid = client.get("/api/mealPlan", params={"weekStart": "2025-01-06"}, headers=BOB).json()["mealPlan"]
    assert grid["MONDAY"]["LUNCH"] is None


def test_dashboard_counts(client):
    today = datetime.utcnow().date().isoformat()
    client.post("/api/mealPlan", json={"title": "Toast", "mealType": "BREAKFAST", "date": today + "T23:00:00"})
    client.post("/api/activities", json={"title": "Swim", "date": today + "T23:00:00"})
    client.post("/api/shopping", json={"weekStart": today, "items": [{"name": "Milk"}, {"name": "Tea", "isPurchased": True}]})

    stats = client.get("/api/dashboard").json()["stats"]
    assert stats == {"upcomingMeals": 1, "weeklyMeals": 1, "pendingShoppingItems": 1, "todayActivities": 1}

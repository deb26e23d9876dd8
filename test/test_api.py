from sqlalchemy.exc import OperationalError

from database_models import SessionLocal, get_db
from services.points_ledger import credit_points

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class BrokenSession:
    def query(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))


def register(client, alias, role="child", age=9, **extra):
    payload = {"alias": alias, "role": role, "age": age, "consent_acknowledgment": True}
    payload.update(extra)
    response = client.post("/api/users", json=payload)
    assert response.status_code == 200, response.text
    return response.json()


def give_points(user_id, points):
    db = SessionLocal()
    try:
        credit_points(db, user_id, points)
        db.commit()
    finally:
        db.close()


def first_emotion_id(client):
    return client.get("/api/emotions").json()[0]["id"]


def test_health(client):
    assert client.get("/").status_code == 200


def test_registration_rules(client):
    child = register(client, "Luna")
    assert child["role"] == "child"
    assert child["consent_verified"] is False
    assert child["parental_consent"] is False
    assert "parent_email" not in child

    plant = client.get(f"/api/users/{child['id']}/plant").json()
    assert plant["name"] == "Mi Plantita"
    assert plant["days_since_planting"] == 1

    adult = register(client, "Mamá Ana", role="caregiver", age=40)
    assert adult["consent_verified"] is True

    assert client.post("/api/users", json={"alias": "Luna", "role": "child", "age": 9,
                                           "consent_acknowledgment": True}).status_code == 409
    assert client.post("/api/users", json={"alias": "Bebé", "role": "child", "age": 4,
                                           "consent_acknowledgment": True}).status_code == 422
    assert client.post("/api/users", json={"alias": "Joven", "role": "caregiver", "age": 16,
                                           "consent_acknowledgment": True}).status_code == 422
    assert client.post("/api/users", json={"alias": "Sol", "role": "child", "age": 9}).status_code == 422

    assert client.get("/api/users", params={"alias": "Luna"}).json()[0]["id"] == child["id"]
    assert client.get("/api/users", params={"alias": "Nadie"}).json() == []


def test_unconsented_child_cannot_write_until_verified(client):
    child = register(client, "Luna")
    emotion_id = first_emotion_id(client)
    entry = {"user_id": str(child["id"]), "emotion_id": str(emotion_id), "text_entry": "Hoy estoy feliz"}

    response = client.post("/api/journal-entries", data=entry)
    assert response.status_code == 403
    detail = response.json()["detail"]
    assert detail["code"] == "CONSENT_REQUIRED"
    assert detail["action"] == "redirect_to_consent"

    response = client.post("/api/plants", json={"user_id": child["id"], "name": "Girasol"})
    assert response.status_code == 403
    assert client.get(f"/api/users/{child['id']}/journal-entries").json() == []

    bad = client.post("/api/verify-consent", json={"user_id": child["id"], "verification_code": "NOPE"})
    assert bad.status_code == 400
    ok = client.post("/api/verify-consent", json={"user_id": child["id"], "verification_code": "APPROVED"})
    assert ok.status_code == 200
    assert ok.json()["user"]["consent_verified"] is True

    assert client.post("/api/journal-entries", data=entry).status_code == 200


def test_terms_only_child_can_write(client):
    child = register(client, "Estrella", parental_consent=True)
    response = client.post("/api/journal-entries", data={"user_id": str(child["id"]), "text_entry": "hola"})
    assert response.status_code == 200


def test_unknown_user_is_rejected_by_gate(client):
    response = client.post("/api/notifications", json={"user_id": 9999, "title": "Hola", "message": "Riega"})
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "USER_NOT_FOUND"


def test_consent_check_database_failure_returns_500(client):
    from main import app

    def broken_db():
        yield BrokenSession()

    app.dependency_overrides[get_db] = broken_db
    try:
        response = client.post("/api/notifications", json={"user_id": 1, "title": "Hola", "message": "Riega"})
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 500
    assert response.json()["detail"]["code"] == "CONSENT_CHECK_ERROR"


def test_journal_entry_awards_points_and_achievements(client):
    child = register(client, "Luna", parental_consent=True)
    response = client.post(
        "/api/journal-entries",
        data={"user_id": str(child["id"]), "emotion_id": str(first_emotion_id(client)), "text_entry": "feliz"},
        files={"photo": ("planta.png", PNG_BYTES, "image/png")},
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["entry"]["points_earned"] == 10
    assert body["entry"]["emotion"] is not None
    assert sorted(a["name"] for a in body["new_achievements"]) == ["Primer Registro", "Primera Semilla"]
    # 日记 10 + 两个成就各 10
    assert body["points"] == 30

    photo_url = body["entry"]["photo_url"]
    assert client.get(photo_url).content == PNG_BYTES
    plant = client.get(f"/api/users/{child['id']}/plant").json()
    assert plant["latest_photo_url"] == photo_url

    dashboard = client.get(f"/api/dashboard/{child['id']}").json()
    assert dashboard["journal_entries_count"] == 1
    assert dashboard["user"]["points"] == 30
    earned = {a["name"] for a in dashboard["achievements"] if a["earned"]}
    assert earned == {"Primer Registro", "Primera Semilla"}

    latest = client.get(f"/api/users/{child['id']}/journal-entries/latest").json()
    assert latest["id"] == body["entry"]["id"]


def test_empty_entry_is_rejected(client):
    child = register(client, "Luna", parental_consent=True)
    response = client.post("/api/journal-entries", data={"user_id": str(child["id"])})
    assert response.status_code == 400


def test_delete_journal_entry_removes_media(client):
    child = register(client, "Luna", parental_consent=True)
    body = client.post(
        "/api/journal-entries",
        data={"user_id": str(child["id"])},
        files={"audio": ("voz.wav", b"RIFF0000", "audio/wav")},
    ).json()
    entry_id = body["entry"]["id"]
    audio_url = body["entry"]["audio_url"]

    assert client.delete(f"/api/journal-entries/{entry_id}", params={"user_id": 9999}).status_code == 404
    assert client.delete(f"/api/journal-entries/{entry_id}", params={"user_id": child["id"]}).status_code == 200
    assert client.get(audio_url).status_code == 404
    assert client.get(f"/api/users/{child['id']}/journal-entries").json() == []


def test_reward_purchase_flow(client):
    child = register(client, "Luna", parental_consent=True)
    rewards = client.get("/api/rewards").json()
    assert [r["points_cost"] for r in rewards] == sorted(r["points_cost"] for r in rewards)
    stickers = rewards[0]
    assert stickers["points_cost"] == 50

    give_points(child["id"], 30)
    response = client.post(f"/api/rewards/{stickers['id']}/purchase", json={"user_id": child["id"]})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INSUFFICIENT_POINTS"
    assert response.json()["detail"]["points_needed"] == 20

    give_points(child["id"], 30)
    response = client.post(f"/api/rewards/{stickers['id']}/purchase", json={"user_id": child["id"]})
    assert response.status_code == 200
    assert response.json()["remaining_points"] == 10

    response = client.post(f"/api/rewards/{stickers['id']}/purchase", json={"user_id": child["id"]})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "ALREADY_PURCHASED"
    assert client.get(f"/api/users/{child['id']}").json()["points"] == 10

    owned = client.get(f"/api/users/{child['id']}/rewards").json()
    assert [r["reward"]["name"] for r in owned] == [stickers["name"]]

    missing = client.post("/api/rewards/9999/purchase", json={"user_id": child["id"]})
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "REWARD_NOT_FOUND"


def test_unconsented_child_cannot_purchase(client):
    child = register(client, "Luna")
    give_points(child["id"], 100)
    reward_id = client.get("/api/rewards").json()[0]["id"]
    response = client.post(f"/api/rewards/{reward_id}/purchase", json={"user_id": child["id"]})
    assert response.status_code == 403
    assert client.get(f"/api/users/{child['id']}").json()["points"] == 100


def test_plant_photo_checks_owner_consent(client):
    child = register(client, "Luna")
    plant_id = client.get(f"/api/users/{child['id']}/plant").json()["id"]
    files = {"photo": ("planta.png", PNG_BYTES, "image/png")}

    assert client.patch(f"/api/plants/{plant_id}/photo", files=files).status_code == 403

    client.post("/api/verify-consent", json={"user_id": child["id"], "verification_code": "APPROVED"})
    response = client.patch(f"/api/plants/{plant_id}/photo", files=files)
    assert response.status_code == 200
    assert response.json()["first_photo_url"] == response.json()["latest_photo_url"]

    response = client.patch(f"/api/plants/{plant_id}/status", json={"user_id": child["id"], "status": "withered"})
    assert response.json()["status"] == "withered"


def test_seeds_and_sharing(client):
    child = register(client, "Luna", parental_consent=True)
    seed = client.post("/api/seeds", data={"user_id": str(child["id"]), "type": "girasol",
                                           "origin": "jardín de la abuela"}).json()
    assert seed["share_code"]
    assert client.get(f"/api/seeds/share/{seed['share_code']}").json()["id"] == seed["id"]
    assert client.get("/api/seeds/share/NOEXISTE").status_code == 404
    assert len(client.get(f"/api/users/{child['id']}/seeds").json()) == 1


def test_notifications(client):
    child = register(client, "Luna", parental_consent=True)
    response = client.post("/api/notifications", json={"user_id": child["id"], "title": "Hola",
                                                      "message": "No olvides regar tu planta"})
    assert response.status_code == 200
    assert client.get(f"/api/users/{child['id']}/notifications").json()[0]["title"] == "Hola"


def test_facilitator_access(client):
    register(client, "Profe", role="facilitator", age=30)
    child = register(client, "Luna", parental_consent=True)
    client.post("/api/journal-entries", data={"user_id": str(child["id"]), "text_entry": "hola"})

    token = client.post("/api/auth/login", json={"alias": "Profe"}).json()["jwt"]
    child_token = client.post("/api/auth/login", json={"alias": "Luna"}).json()["jwt"]
    assert client.post("/api/auth/login", json={"alias": "Nadie"}).status_code == 404

    dashboard = client.get("/api/facilitator/dashboard", headers={"token": token})
    assert dashboard.status_code == 200
    roster = dashboard.json()["children"]
    assert [c["alias"] for c in roster] == ["Luna"]
    assert roster[0]["journal_entries_count"] == 1

    detail = client.get(f"/api/facilitator/child/{child['id']}", headers={"token": token}).json()
    assert len(detail["journal_entries"]) == 1
    assert detail["journal_entries_count"] == 1
    assert detail["user_rewards"] == []

    give_points(child["id"], 100)
    stickers = client.get("/api/rewards").json()[0]
    client.post(f"/api/rewards/{stickers['id']}/purchase", json={"user_id": child["id"]})
    detail = client.get(f"/api/facilitator/child/{child['id']}", headers={"token": token}).json()
    assert [r["reward"]["name"] for r in detail["user_rewards"]] == [stickers["name"]]

    assert client.get("/api/facilitator/dashboard", headers={"token": child_token}).status_code == 403
    assert client.get("/api/facilitator/dashboard", headers={"token": "basura"}).status_code == 401


def test_delete_account(client):
    child = register(client, "Luna", parental_consent=True)
    client.post(
        "/api/journal-entries",
        data={"user_id": str(child["id"]), "text_entry": "hola"},
        files={"photo": ("planta.png", PNG_BYTES, "image/png")},
    )

    refused = client.request("DELETE", f"/api/users/{child['id']}", json={"confirm_deletion": False})
    assert refused.status_code == 400

    response = client.request("DELETE", f"/api/users/{child['id']}", json={"confirm_deletion": True})
    assert response.status_code == 200
    deleted = response.json()["deleted_data"]
    assert deleted["users"] == 1
    assert deleted["journal_entries"] == 1
    assert deleted["plants"] == 1
    assert deleted["achievements"] == 2
    assert deleted["media_files"] == 1
    assert client.get(f"/api/users/{child['id']}").status_code == 404

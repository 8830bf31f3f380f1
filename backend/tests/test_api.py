from quizledger.core.config import settings
from quizledger.services.content import encrypt_question, new_verifier_key

QUESTIONS = [
    ("2+2?", ["3", "4", "5", "6"], "4"),
    ("3*3?", ["6", "9", "12", "15"], "9"),
    ("10-7?", ["1", "2", "3", "4"], "3"),
]


def block_payload(codec, index, question, choices, answer, nonce):
    content, encrypted_answer = encrypt_question(codec, question, choices, answer, nonce)
    return {
        "question_index": index,
        "encrypted_content": content.hex(),
        "encrypted_answer": encrypted_answer.hex(),
        "verifier_key": new_verifier_key().hex(),
        "nonce": nonce,
    }


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_dev_token(client, monkeypatch):
    r = client.post("/api/v1/auth/token", json={"identity": "alice"})
    assert r.status_code == 200
    assert r.json()["token_type"] == "bearer"

    monkeypatch.setattr(settings, "ALLOW_DEV_TOKENS", False)
    assert client.post("/api/v1/auth/token", json={"identity": "alice"}).status_code == 404


def test_writes_require_a_token(client):
    assert client.post("/api/v1/topics/", json={"name": "Math"}).status_code == 401
    r = client.post("/api/v1/topics/", json={"name": "Math"}, headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401


def test_error_body_carries_code_and_category(client, auth):
    headers = auth("owner")
    assert client.post("/api/v1/topics/", json={"name": "Math"}, headers=headers).status_code == 201
    r = client.post("/api/v1/topics/", json={"name": "Math"}, headers=headers)
    assert r.status_code == 409
    assert r.json()["code"] == "AlreadyExists"
    assert r.json()["category"] == "conflict"

    r = client.post("/api/v1/topics/", json={"name": "x" * 40}, headers=headers)
    assert (r.status_code, r.json()["code"]) == (422, "NameTooLong")

    r = client.get("/api/v1/topics/Nowhere")
    assert (r.status_code, r.json()["code"]) == (404, "NotFound")

    r = client.post("/api/v1/topics/Math/status", json={"is_active": False}, headers=auth("mallory"))
    assert (r.status_code, r.json()["code"]) == (403, "Unauthorized")


def test_full_quiz_lifecycle(client, auth, codec):
    owner, alice, bob = auth("owner"), auth("alice"), auth("bob")

    r = client.post(
        "/api/v1/topics/",
        json={"name": "Mathematics", "min_question_count": 3, "min_reward_amount": 1000},
        headers=owner,
    )
    assert r.status_code == 201

    assert client.post("/api/v1/accounts/deposit", json={"amount": 1500}, headers=alice).json()["balance"] == 1500

    r = client.post(
        "/api/v1/quiz-sets/",
        json={"name": "Algebra", "question_count": 2, "unique_id": 1, "reward_amount": 1000, "topic": "Mathematics"},
        headers=alice,
    )
    assert (r.status_code, r.json()["code"]) == (422, "InvalidQuestionCount")

    r = client.post(
        "/api/v1/quiz-sets/",
        json={"name": "Algebra", "question_count": 3, "unique_id": 1, "reward_amount": 1000, "topic": "Mathematics"},
        headers=alice,
    )
    assert r.status_code == 201
    quiz = r.json()
    address = quiz["address"]
    assert quiz["is_initialized"] is False
    assert client.get("/api/v1/accounts/alice").json()["balance"] == 500

    r = client.post(f"/api/v1/quiz-sets/{address}/attempts", json={"answers": {"1": "4"}}, headers=bob)
    assert (r.status_code, r.json()["code"]) == (409, "QuizNotReady")

    for index, (question, choices, answer) in enumerate(QUESTIONS, start=1):
        r = client.post(
            f"/api/v1/quiz-sets/{address}/questions",
            json=block_payload(codec, index, question, choices, answer, 9000 + index),
            headers=alice,
        )
        assert r.status_code == 201
        assert "encrypted_answer" not in r.json()

    r = client.post(
        f"/api/v1/quiz-sets/{address}/questions",
        json=block_payload(codec, 1, "dup", ["a", "b", "c", "d"], "a", 1),
        headers=alice,
    )
    assert (r.status_code, r.json()["code"]) == (409, "DuplicateIndex")
    assert client.get(f"/api/v1/quiz-sets/{address}").json()["is_initialized"] is True

    questions = client.get(f"/api/v1/quiz-sets/{address}/questions").json()
    assert [q["question"] for q in questions] == ["2+2?", "3*3?", "10-7?"]
    assert all(q["ok"] for q in questions)
    assert len(client.get(f"/api/v1/quiz-sets/{address}/blocks").json()) == 3

    r = client.post(f"/api/v1/quiz-sets/{address}/answers", json={"question_index": 2, "answer": "9"}, headers=bob)
    assert (r.json()["state"], r.json()["matched"]) == ("resolved", True)

    r = client.post(f"/api/v1/quiz-sets/{address}/claim", headers=bob)
    assert (r.status_code, r.json()["code"]) == (409, "NoWinnerSet")

    r = client.post(
        f"/api/v1/quiz-sets/{address}/attempts",
        json={"answers": {"1": "4", "2": "9", "3": "3"}, "completed_at": 1234},
        headers=bob,
    )
    assert r.status_code == 200
    attempt = r.json()
    assert attempt["settled"] is True
    assert (attempt["score"], attempt["is_winner"], attempt["reward_amount"]) == (3, True, 1000)

    r = client.post(f"/api/v1/quiz-sets/{address}/claim", headers=alice)
    assert (r.status_code, r.json()["code"]) == (403, "Unauthorized")

    r = client.post(f"/api/v1/quiz-sets/{address}/claim", headers=bob)
    assert r.status_code == 200
    assert (r.json()["amount"], r.json()["vault_balance"]) == (1000, 0)
    assert client.get("/api/v1/accounts/bob").json()["balance"] == 1000

    r = client.post(f"/api/v1/quiz-sets/{address}/claim", headers=bob)
    assert (r.status_code, r.json()["code"]) == (409, "AlreadyClaimed")

    board = client.get("/api/v1/topics/Mathematics/leaderboard").json()
    assert [(e["user"], e["score"]) for e in board] == [("bob", 1)]
    assert client.get("/api/v1/leaderboard").json()[0]["topics"]["Mathematics"]["score"] == 1
    history = client.get("/api/v1/users/bob/history").json()
    assert [(h["completed_at"], h["is_winner"]) for h in history] == [(1234, True)]
    stats = client.get("/api/v1/users/bob/stats").json()
    assert (stats["total_score"], stats["win_rate"]) == (1, 1.0)
    topic_stats = client.get("/api/v1/topics/stats").json()
    assert topic_stats[0]["name"] == "Mathematics"
    assert topic_stats[0]["total_participants"] == 1


def test_manual_completion_and_scores(client, auth):
    owner, alice, bob = auth("owner"), auth("alice"), auth("bob")
    client.post("/api/v1/topics/", json={"name": "History", "min_question_count": 1, "min_reward_amount": 0}, headers=owner)
    address = client.post(
        "/api/v1/quiz-sets/",
        json={"name": "Rome", "question_count": 2, "unique_id": 0, "topic": "History"},
        headers=alice,
    ).json()["address"]

    body = {"is_winner": False, "score": 1, "total_questions": 2, "completed_at": 50}
    assert client.post(f"/api/v1/quiz-sets/{address}/completions", json=body, headers=bob).status_code == 201
    r = client.post(f"/api/v1/quiz-sets/{address}/completions", json=body, headers=bob)
    assert (r.status_code, r.json()["code"]) == (409, "DuplicateCompletion")

    (score,) = client.get("/api/v1/scores", params={"user": "bob"}).json()
    assert (score["total_completed"], score["win_rate"]) == (1, 0.0)


def test_engine_callback_requires_the_engine_secret(client, protocol):
    body = {"requestId": "zzz", "matched": True}
    assert client.post("/api/v1/verifications/callback", json=body).status_code == 401
    r = client.post("/api/v1/verifications/callback", json=body, headers={"Authorization": "Bearer guess"})
    assert r.status_code == 401

    engine = {"Authorization": f"Bearer {settings.ENGINE_CALLBACK_SECRET}"}
    r = client.post("/api/v1/verifications/callback", json=body, headers=engine)
    assert r.status_code == 202
    assert r.json() == {"request_id": "zzz", "accepted": False}
    # results for requests nobody is waiting on are not retained
    assert protocol._delivered == {}


def test_engine_callback_disabled_without_a_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "ENGINE_CALLBACK_SECRET", "")
    r = client.post("/api/v1/verifications/callback", json={"requestId": "zzz", "matched": True})
    assert r.status_code == 403


def test_out_of_range_numbers_are_validation_errors(client, auth):
    alice, bob = auth("alice"), auth("bob")
    address = client.post(
        "/api/v1/quiz-sets/", json={"name": "Rome", "question_count": 1, "unique_id": 0}, headers=alice
    ).json()["address"]

    r = client.post(f"/api/v1/quiz-sets/{address}/answers", json={"question_index": 256, "answer": "x"}, headers=bob)
    assert (r.status_code, r.json()["code"]) == (422, "IndexOutOfRange")

    body = {"is_winner": False, "score": 0, "total_questions": 1, "completed_at": 2**63}
    r = client.post(f"/api/v1/quiz-sets/{address}/completions", json=body, headers=bob)
    assert (r.status_code, r.json()["code"]) == (422, "InvalidAmount")


def test_completion_must_match_the_quiz_set(client, auth):
    alice, bob = auth("alice"), auth("bob")
    address = client.post(
        "/api/v1/quiz-sets/", json={"name": "Rome", "question_count": 2, "unique_id": 0}, headers=alice
    ).json()["address"]

    body = {"is_winner": True, "score": 2, "total_questions": 2, "completed_at": 1}
    r = client.post(f"/api/v1/quiz-sets/{address}/completions", json=body, headers=bob)
    assert (r.status_code, r.json()["code"]) == (403, "Unauthorized")

    body = {"is_winner": False, "score": 40, "total_questions": 40, "reward_amount": 10**15, "completed_at": 1}
    r = client.post(f"/api/v1/quiz-sets/{address}/completions", json=body, headers=bob)
    assert (r.status_code, r.json()["code"]) == (422, "InvalidQuestionCount")
    assert client.get("/api/v1/users/bob/history").json() == []


def test_non_positive_limits_are_rejected(client):
    assert client.get("/api/v1/leaderboard", params={"limit": -1}).status_code == 422
    assert client.get("/api/v1/users/bob/history", params={"limit": 0}).status_code == 422
    assert client.get("/api/v1/topics/Art/leaderboard", params={"limit": -1}).status_code == 422
    assert client.get("/api/v1/topics/stats", params={"top": 0}).status_code == 422


def test_topic_transfer_and_listing(client, auth):
    client.post("/api/v1/topics/", json={"name": "Art"}, headers=auth("owner"))
    r = client.post("/api/v1/topics/Art/transfer", json={"new_owner": "heir"}, headers=auth("owner"))
    assert r.json()["owner"] == "heir"
    r = client.post("/api/v1/topics/Art/status", json={"is_active": False}, headers=auth("heir"))
    assert r.json()["is_active"] is False
    assert client.get("/api/v1/topics/", params={"active_only": True}).json() == []
    assert [t["name"] for t in client.get("/api/v1/topics/").json()] == ["Art"]

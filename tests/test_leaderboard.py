from core.leaderboard import LEADERBOARD_LIMIT, all_users
from core.models import User, UserStats


def _seed(with_session, players):
    """players: (username, grade, best_score, best_stage) tuples; stage None means no stats row."""

    async def _insert(session):
        for username, grade, best_score, best_stage in players:
            user = User(username=username, hashed_password="not-a-hash", grade=grade, school_name="Hanbit")
            session.add(user)
            await session.flush()
            if best_stage is not None:
                session.add(UserStats(user_id=user.id, best_score=best_score, best_stage=best_stage))
        await session.commit()

    with_session(_insert)


def test_leaderboard_orders_by_score_then_stage(client, with_session):
    _seed(
        with_session,
        [
            ("low", 3, 10, 9),
            ("tie_far", 4, 50, 7),
            ("top", 3, 90, 2),
            ("tie_near", 3, 50, 3),
        ],
    )

    response = client.get("/api/leaderboard")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [entry["username"] for entry in body["leaderboard"]] == ["top", "tie_far", "tie_near", "low"]
    assert set(body["leaderboard"][0]) == {
        "username",
        "grade",
        "school_name",
        "best_score",
        "best_stage",
        "tier",
        "correct_answers",
        "total_answers",
        "last_played",
    }


def test_grade_leaderboard_filters_by_grade(client, with_session):
    _seed(
        with_session,
        [
            ("g3_a", 3, 40, 1),
            ("g4_a", 4, 99, 1),
            ("g3_b", 3, 70, 1),
        ],
    )

    body = client.get("/api/leaderboard/3").json()

    assert [entry["username"] for entry in body["leaderboard"]] == ["g3_b", "g3_a"]
    assert all(entry["grade"] == 3 for entry in body["leaderboard"])


def test_grade_must_be_an_integer(client):
    assert client.get("/api/leaderboard/third").status_code == 422


def test_leaderboard_skips_users_without_stats(client, with_session):
    _seed(with_session, [("ranked", 3, 10, 1), ("unranked", 3, 0, None)])

    body = client.get("/api/leaderboard").json()

    assert [entry["username"] for entry in body["leaderboard"]] == ["ranked"]


def test_leaderboard_is_capped(client, with_session):
    players = [(f"player{i:03d}", 5, i, 1) for i in range(LEADERBOARD_LIMIT + 5)]
    _seed(with_session, players)

    everyone = client.get("/api/leaderboard").json()["leaderboard"]
    by_grade = client.get("/api/leaderboard/5").json()["leaderboard"]

    assert len(everyone) == LEADERBOARD_LIMIT
    assert len(by_grade) == LEADERBOARD_LIMIT
    assert everyone[0]["best_score"] == LEADERBOARD_LIMIT + 4
    scores = [entry["best_score"] for entry in everyone]
    assert scores == sorted(scores, reverse=True)


def test_users_listing_fills_in_defaults(client, with_session):
    _seed(with_session, [("ranked", 3, 42, 6), ("unranked", 2, 0, None)])

    response = client.get("/api/users")

    assert response.status_code == 200
    users = {entry["username"]: entry for entry in response.json()["users"]}
    assert users["ranked"]["stats"]["bestScore"] == 42
    assert users["ranked"]["stats"]["bestStage"] == 6
    assert users["unranked"]["schoolName"] == "Hanbit"
    assert users["unranked"]["stats"] == {
        "bestScore": 0,
        "bestStage": 1,
        "playCount": 0,
        "correctAnswers": 0,
        "totalAnswers": 0,
        "tier": "브론즈",
        "gradeRank": 0,
        "lastPlayed": None,
        "gradeHistory": {},
    }


def test_users_listing_hides_password_hashes(client, with_session):
    _seed(with_session, [("ranked", 3, 42, 6)])

    entry = client.get("/api/users").json()["users"][0]

    assert "password" not in entry


def test_legacy_hash_listing_can_be_enabled(with_session):
    _seed(with_session, [("ranked", 3, 42, 6)])

    users = with_session(lambda session: all_users(session, include_password_hash=True))

    assert users[0]["password"] == "not-a-hash"

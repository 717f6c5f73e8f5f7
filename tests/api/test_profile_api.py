import json

from conftest import PromptKind, metrics_payload, segmentation_reply

PLAN = {
    "title": "Heart First",
    "description": "Cut sodium and keep fiber high.",
    "metrics": [
        {"label": "Sodium", "value": "1500mg", "rationale": "Blood pressure"},
        {"label": "Saturated Fat", "value": "13g", "rationale": "Cholesterol"},
        {"label": "Fiber", "value": "30g", "rationale": "Digestion"},
    ],
}


def test_goal_plan_is_stored_and_drives_key_metrics(client, fake_client) -> None:
    fake_client.reply(PromptKind.GOAL_PLAN, json.dumps(PLAN))
    client.put("/profile", json={"age": 52, "primary_goal": "Heart health"})

    response = client.post("/profile/goal-plan")

    assert response.status_code == 200
    assert response.json()["title"] == "Heart First"
    prompt = fake_client.calls_of(PromptKind.GOAL_PLAN)[0]
    assert '"label": "Saturated Fat"' in prompt

    profile = client.get("/profile").json()
    assert profile["age"] == 52
    assert json.loads(profile["detail_goal"]) == PLAN

    key_metrics = client.get("/home").json()["key_metrics"]
    assert [(m["title"], m["target"], m["unit"]) for m in key_metrics] == [
        ("Sodium", 1500.0, "mg"),
        ("Saturated Fat", 13.0, "g"),
        ("Fiber", 30.0, "g"),
    ]


def test_goal_plan_without_api_key(client, fake_client) -> None:
    client.put("/settings/api-key", json={"api_key": ""})

    response = client.post("/profile/goal-plan")

    assert response.status_code == 400
    assert response.json()["detail"]["error_kind"] == "configuration_missing"
    assert fake_client.calls_of(PromptKind.GOAL_PLAN) == []


def test_unparseable_goal_plan_keeps_profile(client, fake_client) -> None:
    fake_client.reply(PromptKind.GOAL_PLAN, "Sure! Here is a plan: eat well.")
    client.put("/profile", json={"primary_goal": "Weight loss"})

    response = client.post("/profile/goal-plan")

    assert response.status_code == 502
    assert response.json()["detail"] == {
        "error_kind": "parse_failure",
        "message": "Failed to parse goal format. Please try again.",
    }
    assert client.get("/profile").json()["detail_goal"] == ""


def test_days_listing(client, fake_client) -> None:
    fake_client.reply(PromptKind.SEGMENTATION, segmentation_reply("Oats"))
    fake_client.reply(PromptKind.METRICS, json.dumps({"Oats": metrics_payload(calories=150)}))
    image = ("oats.jpg", b"\xff\xd8\xff\xe0fake-jpeg", "image/jpeg")
    client.post("/analyze", files={"image": image}, data={"meal_type": "breakfast"})

    days = client.get("/days", params={"limit": 5}).json()

    assert len(days) == 1
    assert days[0]["day_id"] == "14032025"
    assert days[0]["date_label"] == "Today"
    assert days[0]["meals"][0]["calories"] == 150
    assert days[0]["status"]["total_meals"] == 1
    assert client.get("/days", params={"offset": 1}).json() == []
    assert client.get("/days", params={"limit": 0}).status_code == 422


def test_cors_allows_configured_origins_only(client) -> None:
    allowed = client.get("/health", headers={"Origin": "http://localhost:3000"})
    assert allowed.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert allowed.headers["access-control-allow-credentials"] == "true"

    other = client.get("/health", headers={"Origin": "https://evil.example"})
    assert "access-control-allow-origin" not in other.headers

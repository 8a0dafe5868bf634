from fastapi.testclient import TestClient

from autocrm.config import Settings
from autocrm.database.supabase_client import SupabaseClients
from autocrm.main import create_app


def test_hello_is_public(rpc):
    response = rpc("hello", {"name": "Ada"}, kind="query")
    assert response.status_code == 200
    assert response.json() == {"result": {"data": {"greeting": "Hello Ada!"}}}


def test_hello_without_input(rpc):
    assert rpc("hello", kind="query").json()["result"]["data"] == {"greeting": "Hello world!"}


def test_protected_procedure_requires_session(rpc):
    response = rpc("getOrganizations", kind="query")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


def test_invalid_token_is_anonymous(client):
    response = client.get("/trpc/getOrganizations", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


def test_unknown_procedure(rpc, make_user):
    response = rpc("dropEverything", {}, user=make_user())
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_mutation_over_get_is_rejected(rpc, make_user):
    response = rpc("createOrganization", {"name": "Acme"}, user=make_user(), kind="query")
    assert response.status_code == 405
    assert response.json()["error"]["code"] == "METHOD_NOT_SUPPORTED"


def test_invalid_input_is_bad_request(rpc, make_user):
    response = rpc("createOrganization", {"name": "   "}, user=make_user())
    assert response.status_code == 400
    body = response.json()["error"]
    assert body["code"] == "BAD_REQUEST"
    assert "Organization name is required" in body["message"]


def test_invalid_json_input(client, make_user):
    user = make_user()
    response = client.get("/trpc/getTickets", params={"input": "{not json"}, headers=user.headers)
    assert response.status_code == 400


def test_batch_keeps_going_after_a_failure(client, make_user):
    user = make_user("ada")
    response = client.post("/trpc", headers=user.headers, json=[
        {"id": 1, "procedure": "createOrganization", "input": {"name": ""}},
        {"id": 2, "procedure": "createOrganization", "input": {"name": "Acme"}},
        {"id": 3, "procedure": "noSuchThing", "input": None},
        {"id": 4, "procedure": "getOrganizations"},
    ])
    assert response.status_code == 200
    results = {entry["id"]: entry for entry in response.json()}
    assert results[1]["error"]["code"] == "BAD_REQUEST"
    assert results[2]["result"]["data"]["name"] == "Acme"
    assert results[3]["error"]["code"] == "NOT_FOUND"
    assert [o["name"] for o in results[4]["result"]["data"]] == ["Acme"]


def test_unexpected_error_becomes_internal_server_error(rpc, make_user, db):
    user = make_user()
    db.failing_tables.add("organizations")
    response = rpc("createOrganization", {"name": "Acme"}, user=user)
    assert response.status_code == 500
    assert response.json()["error"]["code"] == "INTERNAL_SERVER_ERROR"


def test_update_with_null_title_is_bad_request(rpc, make_user, make_org, db):
    user = make_user()
    org = make_org(members={user.id: "admin"})
    ticket = db.seed("tickets", organization_id=org["id"], created_by=user.id, title="Broken")
    response = rpc("updateTicket", {"ticket_id": ticket["id"], "title": None}, user=user)
    assert response.status_code == 400


def test_health_and_security_headers(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_ready(client):
    assert client.get("/ready").json() == {"status": "ready"}


def test_health_and_ready(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/ready").json() == {"status": "ready"}
    assert client.get("/health").headers["X-Frame-Options"] == "DENY"


def test_not_ready_without_supabase_url(db):
    settings = Settings(supabase_url="", environment="test", rate_limit="1000/minute")
    app = create_app(settings, SupabaseClients(settings, client=db, service_client=db))
    response = TestClient(app).get("/ready")
    assert response.status_code == 503
    assert response.json()["status"] == "not ready"


def test_rate_limit_spares_health(db):
    settings = Settings(supabase_url="http://supabase.test", environment="test", rate_limit="2/minute")
    client = TestClient(create_app(settings, SupabaseClients(settings, client=db, service_client=db)))
    assert client.get("/").status_code == 200
    assert client.get("/").status_code == 200
    assert client.get("/").status_code == 429
    assert client.get("/health").status_code == 200


def test_requests_use_the_service_client_when_a_key_is_set():
    anon, service = object(), object()
    with_key = Settings(supabase_url="http://supabase.test", supabase_service_role_key="service-key")
    assert SupabaseClients(with_key, client=anon, service_client=service).get_service_client() is service
    without_key = Settings(supabase_url="http://supabase.test")
    assert SupabaseClients(without_key, client=anon).get_service_client() is anon

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel

from app.api import deps
from app.core.errors import ConflictError, DependencyFailure, register_exception_handlers
from app.core.response_envelope import register_response_envelope


class Body(BaseModel):
    amount: int


def _build_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)
    register_response_envelope(app)

    @app.get("/conflict")
    async def conflict_route():
        raise ConflictError(code="version_conflict", message="Modified elsewhere", details={"current": {"version": 3}})

    @app.get("/storage")
    async def storage_route():
        raise DependencyFailure(code="storage_unavailable", message="Storage unavailable", details={})

    @app.post("/validate")
    async def validate_route(body: Body):
        return {"amount": body.amount}

    @app.get("/protected")
    async def protected_route(user=Depends(deps.get_current_user)):
        return {"user": str(user)}

    @app.get("/empty", status_code=204)
    async def empty_route():
        return None

    return app


def test_service_error_renders_envelope():
    client = TestClient(_build_app())
    response = client.get("/conflict")
    assert response.status_code == 409
    assert response.json() == {
        "code": "version_conflict",
        "message": "Modified elsewhere",
        "data": None,
        "details": {"current": {"version": 3}},
    }


def test_dependency_failure_is_bad_gateway():
    client = TestClient(_build_app())
    response = client.get("/storage")
    assert response.status_code == 502
    assert response.json()["code"] == "storage_unavailable"


def test_request_validation_names_the_field():
    client = TestClient(_build_app())
    response = client.post("/validate", json={"amount": "lots"})
    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "validation_error"
    assert body["message"].startswith("amount:")


def test_success_body_is_wrapped():
    client = TestClient(_build_app())
    response = client.post("/validate", json={"amount": 5})
    assert response.status_code == 200
    assert response.json() == {"code": "ok", "message": "OK", "data": {"amount": 5}, "details": {}}


def test_missing_token_is_unauthorized():
    client = TestClient(_build_app())
    response = client.get("/protected")
    assert response.status_code == 401
    assert response.json()["code"] == "unauthorized"


def test_no_content_becomes_empty_envelope():
    client = TestClient(_build_app())
    response = client.get("/empty")
    assert response.status_code == 200
    assert response.json()["data"] is None

"""
Integration tests for complete user flows through the HTTP API.

Runs the real application wiring (dependencies, domain services,
exception handlers) over the in-memory store, with the email sender
replaced by a recording notifier.
"""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from src.adapters.repository.memory import InMemoryAccountRepository
from src.api.dependencies import get_notifier
from src.api.main import app


@pytest.fixture
def client(notifier) -> Generator[TestClient, None, None]:
    app.state.repository = InMemoryAccountRepository()
    app.dependency_overrides[get_notifier] = lambda: notifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        del app.state.repository


def register_active(client: TestClient, notifier, email: str, password: str = "secure123") -> int:
    assert client.post("/v1/register", json={"email": email}).status_code == 202
    confirm = client.post("/v1/register/confirm", json={"code": notifier.last_code(email)}).json()
    user_id = confirm["user_id"]
    response = client.put(
        f"/v1/users/{user_id}/password",
        json={"password": password, "setup_code": confirm["setup_code"]},
    )
    assert response.status_code == 200
    return user_id


class TestRegistrationFlow:
    def test_register_confirm_password_login(self, client: TestClient, notifier) -> None:
        response = client.post("/v1/register", json={"email": "User@Example.com"})
        assert response.status_code == 202
        assert response.json()["email"] == "user@example.com"

        code = notifier.last_code("user@example.com")
        confirm = client.post("/v1/register/confirm", json={"code": code.lower()})
        assert confirm.status_code == 200
        user_id = confirm.json()["user_id"]
        setup_code = confirm.json()["setup_code"]

        # Code is single use
        again = client.post("/v1/register/confirm", json={"code": code})
        assert again.status_code == 400

        client.put(
            f"/v1/users/{user_id}/password", json={"password": "secure123", "setup_code": setup_code}
        )
        login = client.post("/v1/login", json={"email": "user@example.com", "password": "secure123"})
        assert login.status_code == 200
        assert login.json() == {"user_id": user_id, "company_id": None, "master_id": None}

    def test_password_before_confirmation_is_409(self, client: TestClient, notifier) -> None:
        client.post("/v1/register", json={"email": "user@example.com"})
        repository = app.state.repository
        user_id = repository.find_account_by_email("user@example.com").user_id

        response = client.put(
            f"/v1/users/{user_id}/password",
            json={"password": "secure123", "setup_code": "ABCDEFGHJKLM"},
        )

        assert response.status_code == 409

    def test_register_twice_resends(self, client: TestClient, notifier) -> None:
        client.post("/v1/register", json={"email": "user@example.com"})
        second = client.post("/v1/register", json={"email": "user@example.com"})

        assert second.status_code == 202
        assert notifier.subjects("user@example.com") == [
            "Registration Confirmation Code",
            "Resend Registration Confirmation Code",
        ]

    def test_register_active_email_is_409(self, client: TestClient, notifier) -> None:
        register_active(client, notifier, "user@example.com")
        response = client.post("/v1/register", json={"email": "user@example.com"})
        assert response.status_code == 409
        assert response.json() == {"detail": "Registration failed"}

    def test_email_outage_does_not_fail_registration(self, client: TestClient, notifier) -> None:
        notifier.fail = True
        assert client.post("/v1/register", json={"email": "user@example.com"}).status_code == 202

        notifier.fail = False
        client.post("/v1/register/resend", json={"email": "user@example.com"})
        confirm = client.post(
            "/v1/register/confirm", json={"code": notifier.last_code("user@example.com")}
        )
        assert confirm.status_code == 200


class TestPasswordChangeFlow:
    def test_unauthenticated_change_is_rejected(self, client: TestClient, notifier) -> None:
        user_id = register_active(client, notifier, "victim@example.com", "victim-secret")

        response = client.put(f"/v1/users/{user_id}/password", json={"password": "attacker"})

        assert response.status_code == 401
        hijack = client.post("/v1/login", json={"email": "victim@example.com", "password": "attacker"})
        owner = client.post(
            "/v1/login", json={"email": "victim@example.com", "password": "victim-secret"}
        )
        assert hijack.status_code == 401
        assert owner.json()["user_id"] == user_id

    def test_spent_setup_code_cannot_reset_password(self, client: TestClient, notifier) -> None:
        client.post("/v1/register", json={"email": "victim@example.com"})
        confirm = client.post(
            "/v1/register/confirm", json={"code": notifier.last_code("victim@example.com")}
        ).json()
        body = {"password": "victim-secret", "setup_code": confirm["setup_code"]}
        assert client.put(f"/v1/users/{confirm['user_id']}/password", json=body).status_code == 200

        replay = client.put(
            f"/v1/users/{confirm['user_id']}/password",
            json={"password": "attacker", "setup_code": confirm["setup_code"]},
        )

        assert replay.status_code == 401
        login = client.post("/v1/login", json={"email": "victim@example.com", "password": "attacker"})
        assert login.status_code == 401

    def test_change_with_current_credentials(self, client: TestClient, notifier) -> None:
        user_id = register_active(client, notifier, "user@example.com", "secure123")

        response = client.put(
            f"/v1/users/{user_id}/password",
            json={"password": "another123"},
            auth=("user@example.com", "secure123"),
        )

        assert response.status_code == 200
        assert notifier.subjects("user@example.com")[-1] == "Changed the Password"
        login = client.post("/v1/login", json={"email": "user@example.com", "password": "another123"})
        assert login.json()["user_id"] == user_id

    def test_cannot_change_another_users_password(self, client: TestClient, notifier) -> None:
        victim_id = register_active(client, notifier, "victim@example.com", "victim-secret")
        register_active(client, notifier, "attacker@example.com", "attacker-secret")

        response = client.put(
            f"/v1/users/{victim_id}/password",
            json={"password": "taken-over"},
            auth=("attacker@example.com", "attacker-secret"),
        )

        assert response.status_code == 401
        login = client.post(
            "/v1/login", json={"email": "victim@example.com", "password": "victim-secret"}
        )
        assert login.status_code == 200


class TestRecoveryFlow:
    def test_recover_and_log_in(self, client: TestClient, notifier) -> None:
        user_id = register_active(client, notifier, "user@example.com", "secure123")

        assert client.post("/v1/recovery", json={"email": "user@example.com"}).status_code == 202
        code = notifier.last_code("user@example.com")
        complete = client.post("/v1/recovery/complete", json={"code": code, "password": "newpass12"})
        assert complete.status_code == 200

        old = client.post("/v1/login", json={"email": "user@example.com", "password": "secure123"})
        new = client.post("/v1/login", json={"email": "user@example.com", "password": "newpass12"})
        assert old.status_code == 401
        assert new.json()["user_id"] == user_id
        assert notifier.subjects("user@example.com")[-1] == "Changed the Password"


class TestProfileAndTenancyFlow:
    def test_profile_seeds_roles_and_welcomes_once(self, client: TestClient, notifier) -> None:
        user_id = register_active(client, notifier, "boss@example.com")
        body = {"first_name": "Ana", "last_name": "Silva"}

        assert client.get(f"/v1/users/{user_id}/profile/completed").json() == {"completed": False}
        client.put(f"/v1/users/{user_id}/profile", json=body)
        client.put(f"/v1/users/{user_id}/profile", json=body)

        assert client.get(f"/v1/users/{user_id}/profile/completed").json() == {"completed": True}
        assert notifier.subjects("boss@example.com").count("Welcome to Sado!") == 1
        roles = [key for key in app.state.repository._tables.roles if key[0] == user_id]
        assert len(roles) == 5

    def test_company_member_lifecycle(self, client: TestClient, notifier) -> None:
        master_id = register_active(client, notifier, "boss@example.com")
        company = client.post("/v1/companies", json={"master_id": master_id, "name": "Acme"})
        assert company.status_code == 201
        company_id = company.json()["company_id"]

        added = client.post(
            f"/v1/companies/{company_id}/members",
            json={
                "email": "rui@example.com",
                "first_name": "Rui",
                "last_name": "Costa",
                "access_level": 2,
                "password": "member123",
            },
        )
        assert added.status_code == 201
        member_id = added.json()["user_id"]

        login = client.post("/v1/login", json={"email": "rui@example.com", "password": "member123"})
        assert login.json() == {"user_id": member_id, "company_id": company_id, "master_id": master_id}

        boss = ("boss@example.com", "secure123")
        assert client.get("/v1/companies/members", params={"master_id": master_id}).status_code == 401
        members = client.get("/v1/companies/members", auth=boss).json()
        assert [(m["user_id"], m["access_level"]) for m in members] == [(member_id, 2)]

        # The member cannot act as the master
        as_member = client.get("/v1/companies/members", auth=("rui@example.com", "member123"))
        assert as_member.json() == []

        updated = client.put(
            f"/v1/companies/members/{member_id}",
            json={"email": "rui.costa@example.com", "first_name": "Rui", "last_name": "Costa"},
            auth=boss,
        )
        assert updated.status_code == 200
        clash = client.put(
            f"/v1/companies/members/{member_id}",
            json={"email": "boss@example.com", "first_name": "Rui", "last_name": "Costa"},
            auth=boss,
        )
        assert clash.status_code == 409

        duplicate = client.post(
            f"/v1/companies/{company_id}/users", json={"user_id": member_id, "access_level": 1}
        )
        assert duplicate.status_code == 409

        forged = client.delete(f"/v1/companies/members/{member_id}", params={"master_id": master_id})
        assert forged.status_code == 401

        removed = client.delete(f"/v1/companies/members/{member_id}", auth=boss)
        assert removed.status_code == 204
        login = client.post(
            "/v1/login", json={"email": "rui.costa@example.com", "password": "member123"}
        )
        assert login.status_code == 401


class TestHealth:
    def test_health_without_database(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

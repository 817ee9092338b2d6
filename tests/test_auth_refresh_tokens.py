from __future__ import annotations

import unittest

from _helpers import ApiTestCase
from myzo.utils.jwt_utils import create_access_token, get_bearer_token


class AuthRefreshTokensTestCase(ApiTestCase):
    def _register(self) -> dict:
        suffix = self._unique()
        res = self.client.post("/api/auth/register", json={
            "email": f"Refresh-{suffix}@Example.com",
            "password": "Passw0rd!",
            "firstName": "Refresh",
            "lastName": "User",
        })
        self.assertEqual(res.status_code, 201)
        data = res.get_json() or {}
        self.assertTrue((data.get("accessToken") or "").strip())
        self.assertTrue((data.get("refreshToken") or "").strip())
        self.assertTrue((data.get("expiresAt") or "").endswith("Z"))
        return data

    def test_register_lowercases_email_and_rejects_duplicates(self):
        data = self._register()
        email = data["user"]["email"]
        self.assertEqual(email, email.lower())
        again = self.client.post("/api/auth/register", json={
            "email": email.upper(),
            "password": "Passw0rd!",
            "firstName": "Again",
            "lastName": "User",
        })
        self.assertEqual(again.status_code, 400)
        self.assertEqual(again.get_json()["message"], "User with this email already exists")

    def test_register_validation_errors_are_listed(self):
        res = self.client.post("/api/auth/register", json={"email": "not-an-email", "password": "x"})
        self.assertEqual(res.status_code, 400)
        body = res.get_json()
        self.assertEqual(body["error"], "VALIDATION_FAILED")
        fields = {d["field"] for d in body["details"]}
        self.assertIn("email", fields)
        self.assertIn("password", fields)

    def test_login_with_wrong_password_is_rejected(self):
        data = self._register()
        res = self.client.post("/api/auth/login", json={"email": data["user"]["email"], "password": "wrong"})
        self.assertEqual(res.status_code, 401)
        ok = self.client.post("/api/auth/login", json={"email": data["user"]["email"], "password": "Passw0rd!"})
        self.assertEqual(ok.status_code, 200)
        self.assertTrue(ok.get_json()["accessToken"])

    def test_refresh_rotation_enforced(self):
        registered = self._register()
        refresh_1 = registered["refreshToken"]

        refreshed = self.client.post("/api/auth/refresh", json={"refreshToken": refresh_1})
        self.assertEqual(refreshed.status_code, 200)
        refresh_2 = (refreshed.get_json().get("refreshToken") or "").strip()
        self.assertTrue(refresh_2)
        self.assertNotEqual(refresh_1, refresh_2)

        replay_old = self.client.post("/api/auth/refresh", json={"refresh_token": refresh_1})
        self.assertEqual(replay_old.status_code, 401)

    def test_refresh_requires_token(self):
        res = self.client.post("/api/auth/refresh", json={})
        self.assertEqual(res.status_code, 400)

    def test_logout_revokes_refresh_token(self):
        registered = self._register()
        access_token = registered["accessToken"]
        refresh_token = registered["refreshToken"]

        logout = self.client.post("/api/auth/logout", headers=self.auth(access_token))
        self.assertEqual(logout.status_code, 200)
        self.assertGreaterEqual(int(logout.get_json()["revokedRefreshTokens"]), 1)

        refreshed = self.client.post("/api/auth/refresh", json={"refreshToken": refresh_token})
        self.assertEqual(refreshed.status_code, 401)

    def test_verify_and_me(self):
        registered = self._register()
        token = registered["accessToken"]
        verify = self.client.get("/api/auth/verify", headers=self.auth(token))
        self.assertEqual(verify.status_code, 200)
        self.assertTrue(verify.get_json()["valid"])
        self.assertEqual(verify.get_json()["user"]["role"], "CUSTOMER")

        me = self.client.get("/api/auth/me", headers=self.auth(token))
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.get_json()["user"]["id"], registered["user"]["id"])

        self.assertEqual(self.client.get("/api/auth/verify").status_code, 401)
        self.assertEqual(self.client.get("/api/auth/verify", headers=self.auth("garbage")).status_code, 401)

    def test_expired_and_malformed_credentials(self):
        user_id = int(self._register()["user"]["id"])
        with self.app.app_context():
            expired = create_access_token(user_id, role="CUSTOMER", ttl_seconds=-5)
        res = self.client.get("/api/auth/verify", headers=self.auth(expired))
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.get_json()["message"], "Token expired")
        self.assertEqual(self.client.get("/api/auth/me", headers=self.auth(expired)).status_code, 401)

        self.assertIsNone(get_bearer_token("Token abc"))
        self.assertIsNone(get_bearer_token("Bearer a b"))
        self.assertEqual(get_bearer_token("bearer  abc "), "abc")


if __name__ == "__main__":
    unittest.main()

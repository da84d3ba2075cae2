"""
Integration Tests for the user API

Profile, assistant customization, history and ask-to-assistant.
"""

from unittest.mock import AsyncMock, patch

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from nova.services.image_host import LocalImageHost

pytestmark = pytest.mark.integration

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class TestCurrentUser:
    """GET /api/user/current"""

    def test_current_user(self, signed_in_client):
        response = signed_in_client.get("/api/user/current")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Ada"
        assert data["history"] == []
        assert set(data) == {
            "id", "name", "email", "assistantName", "assistantImage",
            "history", "createdAt", "updatedAt",
        }


class TestUpdateAssistant:
    """POST /api/user/update"""

    def test_update_with_gallery_image(self, signed_in_client):
        response = signed_in_client.post("/api/user/update", data={
            "assistantName": "Jarvis",
            "imageUrl": "/static/images/image1.png",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["assistantName"] == "Jarvis"
        assert data["assistantImage"] == "/static/images/image1.png"

        current = signed_in_client.get("/api/user/current").json()
        assert current["assistantName"] == "Jarvis"

    def test_update_with_uploaded_file(self, signed_in_client, tmp_path):
        host = LocalImageHost(tmp_path / "uploads")

        with patch("nova.api.users.get_image_host", return_value=host):
            response = signed_in_client.post(
                "/api/user/update",
                data={"assistantName": "Jarvis"},
                files={"assistantImage": ("avatar.png", PNG_BYTES, "image/png")},
            )

        assert response.status_code == 200
        image = response.json()["assistantImage"]
        assert image.startswith("/uploads/") and image.endswith(".png")
        assert (tmp_path / "uploads" / image.rsplit("/", 1)[1]).read_bytes() == PNG_BYTES

    def test_uploaded_file_is_served(self, signed_in_client):
        response = signed_in_client.post(
            "/api/user/update",
            data={"assistantName": "Jarvis"},
            files={"assistantImage": ("avatar.png", PNG_BYTES, "image/png")},
        )
        image = response.json()["assistantImage"]

        served = signed_in_client.get(image)

        assert served.status_code == 200
        assert served.content == PNG_BYTES

    def test_rejects_non_image(self, signed_in_client):
        response = signed_in_client.post(
            "/api/user/update",
            data={"assistantName": "Jarvis"},
            files={"assistantImage": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 400

    def test_requires_name(self, signed_in_client):
        response = signed_in_client.post("/api/user/update", data={"assistantName": "  "})

        assert response.status_code == 400

    def test_upload_failure_is_generic(self, signed_in_client):
        host = AsyncMock()
        host.upload.side_effect = RuntimeError("Cloudinary upload failed: 401")

        with patch("nova.api.users.get_image_host", return_value=host):
            response = signed_in_client.post(
                "/api/user/update",
                data={"assistantName": "Jarvis"},
                files={"assistantImage": ("avatar.png", PNG_BYTES, "image/png")},
            )

        assert response.status_code == 500
        assert response.json()["detail"] == "Error updating assistant info"

    def test_requires_session(self, client):
        response = client.post("/api/user/update", data={"assistantName": "Jarvis"})

        assert response.status_code == 401


class TestAskToAssistant:
    """POST /api/user/asktoassistant"""

    def test_math_question(self, signed_in_client, mock_llm):
        response = signed_in_client.post("/api/user/asktoassistant", json={
            "command": "what is 5 plus 10",
        })

        assert response.status_code == 200
        assert response.json() == {"type": "calculation", "response": "The result is 15"}
        mock_llm.generate.assert_not_called()

    def test_general_question(self, signed_in_client, mock_llm):
        response = signed_in_client.post("/api/user/asktoassistant", json={
            "command": "what is the capital of France",
        })

        assert response.status_code == 200
        assert response.json() == {"type": "general", "response": "Paris is the capital of France."}

        prompt = mock_llm.generate.await_args.args[0]
        assert "You are Nova" in prompt
        assert "created by Ada" in prompt

    def test_custom_assistant_name_in_prompt(self, signed_in_client, mock_llm):
        signed_in_client.post("/api/user/update", data={"assistantName": "Jarvis"})

        signed_in_client.post("/api/user/asktoassistant", json={"command": "tell me a joke"})

        assert "You are Jarvis" in mock_llm.generate.await_args.args[0]

    def test_date_directive(self, signed_in_client, mock_llm):
        mock_llm.generate.return_value = '{"type": "get-date"}'

        response = signed_in_client.post("/api/user/asktoassistant", json={
            "command": "what is today's date",
        })

        assert response.json() == {"type": "get-date", "response": "Current date is 2024-03-15"}

    def test_history_is_appended(self, signed_in_client):
        for command in ("what is 1 plus 1", "tell me a joke", "what is 1 plus 1"):
            signed_in_client.post("/api/user/asktoassistant", json={"command": command})

        response = signed_in_client.get("/api/user/history")

        assert response.json() == {
            "history": ["what is 1 plus 1", "tell me a joke", "what is 1 plus 1"],
            "total": 3,
        }

        limited = signed_in_client.get("/api/user/history", params={"limit": 1})
        assert limited.json()["history"] == ["what is 1 plus 1"]

    def test_bad_history_limit(self, signed_in_client):
        response = signed_in_client.get("/api/user/history", params={"limit": 0})

        assert response.status_code == 400

    def test_empty_command(self, signed_in_client):
        response = signed_in_client.post("/api/user/asktoassistant", json={"command": "   "})

        assert response.status_code == 400

    def test_upstream_failure_returns_apology(self, signed_in_client, mock_llm, mock_sleep):
        mock_llm.generate.side_effect = RuntimeError("503 Service Unavailable")

        response = signed_in_client.post("/api/user/asktoassistant", json={
            "command": "tell me a joke",
        })

        assert response.status_code == 200
        assert response.json()["response"] == (
            "Sorry, there was a temporary issue connecting to the assistant. Please try again."
        )
        assert mock_llm.generate.await_count == 3
        assert mock_sleep.await_count == 2

    def test_unexpected_error_is_generic(self, signed_in_client, responder):
        with patch.object(responder, "respond", AsyncMock(side_effect=RuntimeError("boom"))):
            response = signed_in_client.post("/api/user/asktoassistant", json={
                "command": "tell me a joke",
            })

        assert response.status_code == 500
        assert response.json() == {"response": "Error processing your request"}

    def test_requires_session(self, client):
        response = client.post("/api/user/asktoassistant", json={"command": "hi"})

        assert response.status_code == 401


class TestSystemEndpoints:
    """Health, root redirect and headers"""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["llm_configured"] is False

    def test_security_headers(self, client):
        response = client.get("/health")

        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_root_redirects_to_client(self, client):
        response = client.get("/", follow_redirects=False)

        assert response.status_code in (302, 307)
        assert response.headers["location"] == "/static/index.html"

    def test_client_is_served(self, client):
        response = client.get("/static/index.html")

        assert response.status_code == 200
        assert "app.js" in response.text

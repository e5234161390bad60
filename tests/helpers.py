import re
from datetime import datetime, timedelta, timezone

# Fixed "now" for vote-window checks.
T0 = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

OTP_RE = re.compile(r"Your OTP is: (\d+)")


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingMailer:
    """Collects outgoing mail instead of talking to SMTP."""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def send_email(self, to, subject, body_text, body_html=None):
        if self.fail:
            raise ConnectionRefusedError("smtp unavailable")
        self.sent.append({"to": to, "subject": subject, "text": body_text, "html": body_html})

    async def close(self):
        pass

    def last_otp(self, email: str) -> str:
        for msg in reversed(self.sent):
            if msg["to"] == email:
                return OTP_RE.search(msg["text"]).group(1)
        raise AssertionError(f"no mail sent to {email}")


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def register_verified(client, mailer, email, name="Test User", role="voter", password="secret123"):
    """Register, verify the mailed OTP, and return ``(user_id, token)``."""
    resp = client.post("/api/auth/register", json={
        "email": email, "password": password, "name": name, "role": role,
    })
    assert resp.status_code == 201, resp.text
    user_id = resp.json()["userId"]
    resp = client.post("/api/auth/verify-otp", json={"userId": user_id, "otp": mailer.last_otp(email)})
    assert resp.status_code == 200, resp.text
    return user_id, resp.json()["token"]


def election_payload(start=None, end=None, candidates=("Alice", "Bob"), **extra):
    body = {
        "title": "Student Council",
        "description": "Annual vote",
        "candidates": [{"name": n, "party": f"{n} Party"} for n in candidates],
        "startDate": (start or T0 - timedelta(minutes=30)).isoformat(),
        "endDate": (end or T0 + timedelta(minutes=30)).isoformat(),
    }
    body.update(extra)
    return body

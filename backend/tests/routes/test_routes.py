import asyncio
import json
from unittest.mock import patch

from pydantic import SecretStr
import pytest

from teachtape.core.config import settings
from teachtape.models.booking import PaymentStatus
from teachtape.models.listing import ListingType

from tests.conftest import auth_headers

REVIEW_URL = "https://docs.google.com/document/d/abc123"


class TestCheckoutRoutes:
    def test_guest_checkout(self, client, factory):
        coach = factory.coach()
        listing = factory.listing(coach)

        resp = client.post(
            "/api/v1/checkout",
            json={"listing_id": listing.id, "coach_id": coach.id, "buyer_email": "guest@example.com"},
        )

        assert resp.status_code == 201
        body = resp.json()
        assert body["url"].startswith("https://checkout.example.test/")
        assert body["booking_id"]

    def test_signed_in_buyer_uses_profile_email(self, client, factory, db):
        coach = factory.coach()
        listing = factory.listing(coach)
        buyer = factory.profile(email="athlete@example.com")

        resp = client.post(
            "/api/v1/checkout",
            json={"listing_id": listing.id, "coach_id": coach.id},
            headers=auth_headers(buyer.id),
        )

        assert resp.status_code == 201

    def test_guest_without_email(self, client, factory):
        coach = factory.coach()
        listing = factory.listing(coach)

        resp = client.post("/api/v1/checkout", json={"listing_id": listing.id, "coach_id": coach.id})

        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "INVALID_BUYER_EMAIL"

    def test_coach_not_ready(self, client, factory):
        coach = factory.coach(ready=False)
        listing = factory.listing(coach)

        resp = client.post(
            "/api/v1/checkout",
            json={"listing_id": listing.id, "coach_id": coach.id, "buyer_email": "g@example.com"},
        )

        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "PAYMENT_SETUP_INCOMPLETE"


class TestAuth:
    def test_missing_profile_header(self, client):
        resp = client.get("/api/v1/film-reviews/pending")
        assert resp.status_code == 401

    def test_unknown_profile(self, client):
        resp = client.get("/api/v1/film-reviews/pending", headers=auth_headers("01HZZZZZZZZZZZZZZZZZZZZZZZ"))
        assert resp.status_code == 401

    def test_athlete_cannot_use_coach_routes(self, client, factory):
        athlete = factory.profile()
        resp = client.get("/api/v1/film-reviews/pending", headers=auth_headers(athlete.id))
        assert resp.status_code == 403


class TestFilmReviewRoutes:
    def test_accept_then_submit(self, client, factory):
        coach = factory.coach()
        booking = factory.paid_film_review(coach, buyer=factory.profile())
        headers = auth_headers(coach.profile_id)

        pending = client.get("/api/v1/film-reviews/pending", headers=headers)
        assert [b["id"] for b in pending.json()["bookings"]] == [booking.id]

        accepted = client.post(f"/api/v1/film-reviews/{booking.id}/accept", headers=headers)
        assert accepted.status_code == 200
        assert accepted.json()["review_status"] == "accepted"
        assert accepted.json()["deadline_at"] is not None

        submitted = client.post(
            f"/api/v1/film-reviews/{booking.id}/submit", json={"review_url": REVIEW_URL}, headers=headers
        )
        assert submitted.status_code == 200
        assert submitted.json()["payment_status"] == "completed"

    def test_decline_without_body(self, client, factory):
        coach = factory.coach()
        booking = factory.paid_film_review(coach)

        resp = client.post(f"/api/v1/film-reviews/{booking.id}/decline", headers=auth_headers(coach.profile_id))

        assert resp.status_code == 200
        assert resp.json() == {"booking_id": booking.id, "refund_issued": True}

    def test_other_coach_gets_404(self, client, factory):
        booking = factory.paid_film_review()
        stranger = factory.coach()

        resp = client.post(f"/api/v1/film-reviews/{booking.id}/accept", headers=auth_headers(stranger.profile_id))

        assert resp.status_code == 404

    def test_unpaid_gets_409(self, client, factory):
        coach = factory.coach()
        booking = factory.paid_film_review(coach, payment_status=PaymentStatus.PENDING)

        resp = client.post(f"/api/v1/film-reviews/{booking.id}/accept", headers=auth_headers(coach.profile_id))

        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "BOOKING_NOT_PAID"

    def test_malformed_booking_id(self, client, factory):
        coach = factory.coach()
        resp = client.post("/api/v1/film-reviews/not-a-ulid/accept", headers=auth_headers(coach.profile_id))
        assert resp.status_code == 422


class TestBookingRoutes:
    def test_buyer_reads_status(self, client, factory):
        buyer = factory.profile()
        booking = factory.booking(factory.listing(factory.coach()), buyer=buyer)

        resp = client.get(f"/api/v1/bookings/{booking.id}", headers=auth_headers(buyer.id))

        assert resp.status_code == 200
        assert resp.json()["viewer_role"] == "buyer"
        assert resp.json()["payment_status"] == "paid"

    def test_coach_completes_lesson_and_buyer_reviews(self, client, factory):
        coach = factory.coach()
        buyer = factory.profile()
        booking = factory.booking(factory.listing(coach), buyer=buyer)

        done = client.post(f"/api/v1/bookings/{booking.id}/complete", headers=auth_headers(coach.profile_id))
        assert done.json()["payment_status"] == "completed"

        review = client.post(
            "/api/v1/reviews",
            json={"booking_id": booking.id, "rating": 5, "comment": "Great"},
            headers=auth_headers(buyer.id),
        )
        assert review.status_code == 201

        again = client.post(
            "/api/v1/reviews", json={"booking_id": booking.id, "rating": 4}, headers=auth_headers(buyer.id)
        )
        assert again.status_code == 409

        listed = client.get(f"/api/v1/reviews/coach/{coach.id}")
        assert [r["rating"] for r in listed.json()["reviews"]] == [5]

    def test_film_review_cannot_be_rated(self, client, factory):
        buyer = factory.profile()
        booking = factory.paid_film_review(buyer=buyer, payment_status=PaymentStatus.COMPLETED)

        resp = client.post(
            "/api/v1/reviews", json={"booking_id": booking.id, "rating": 5}, headers=auth_headers(buyer.id)
        )

        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "REVIEW_NOT_ALLOWED_FOR_TYPE"

    def test_conversation_on_demand(self, client, factory):
        coach = factory.coach()
        buyer = factory.profile()
        booking = factory.booking(factory.listing(coach), buyer=buyer)

        first = client.post(f"/api/v1/bookings/{booking.id}/conversation", headers=auth_headers(buyer.id))
        second = client.post(f"/api/v1/bookings/{booking.id}/conversation", headers=auth_headers(coach.profile_id))

        assert first.json()["created"] is True
        assert second.json() == {"conversation_id": first.json()["conversation_id"], "created": False}


class TestPaymentRoutes:
    def test_onboarding_and_status(self, client, factory):
        coach = factory.coach(ready=False)
        headers = auth_headers(coach.profile_id)

        onboarding = client.post("/api/v1/payments/onboarding", headers=headers)
        assert onboarding.status_code == 200
        assert onboarding.json()["onboarding_url"]

        status = client.get("/api/v1/payments/account-status", headers=headers)
        assert status.json()["has_account"] is True
        assert status.json()["charges_enabled"] is False

    def test_fee_breakdown(self, client, factory):
        listing = factory.listing(factory.coach(), listing_type=ListingType.FILM_REVIEW, price_cents=2500)

        resp = client.get(f"/api/v1/pricing/fee-breakdown/{listing.id}")

        assert resp.status_code == 200
        assert resp.json()["platform_fee_cents"] == 250
        assert resp.json()["coach_payout_cents"] == 2250


class TestWebhookRoutes:
    def test_stripe_rejected_without_secret(self, client):
        resp = client.post("/api/v1/webhooks/stripe", content=b"{}")
        assert resp.status_code == 401

    def test_stripe_checkout_completed(self, client, factory, monkeypatch, db):
        monkeypatch.setattr(settings, "stripe_webhook_secret", SecretStr("whsec_route"))
        booking = factory.booking(factory.listing(factory.coach()), payment_status=PaymentStatus.PENDING)
        payload = json.dumps(
            {
                "id": "evt_route",
                "type": "checkout.session.completed",
                "created": 1767225600,
                "data": {
                    "object": {"id": "cs_x", "client_reference_id": booking.id, "payment_status": "paid"}
                },
            }
        )

        first = client.post(
            "/api/v1/webhooks/stripe", content=payload, headers={"Stripe-Signature": "valid:whsec_route"}
        )
        second = client.post(
            "/api/v1/webhooks/stripe", content=payload, headers={"Stripe-Signature": "valid:whsec_route"}
        )

        assert first.json() == {"received": True, "duplicate": False, "status": "processed"}
        assert second.json()["duplicate"] is True
        db.refresh(booking)
        assert booking.payment_status == "paid"

    def test_zoom_handshake(self, client, monkeypatch):
        monkeypatch.setattr(settings, "zoom_webhook_secret_token", SecretStr("zoom"))

        resp = client.post(
            "/api/v1/webhooks/zoom",
            json={"event": "endpoint.url_validation", "payload": {"plainToken": "tok"}},
        )

        assert resp.status_code == 200
        assert resp.json()["plainToken"] == "tok"
        assert len(resp.json()["encryptedToken"]) == 64

    @pytest.mark.parametrize(
        "path, body",
        [
            ("/api/v1/webhooks/stripe", b"{}"),
            ("/api/v1/webhooks/zoom", b'{"event": "endpoint.url_validation", "payload": {"plainToken": "t"}}'),
        ],
    )
    def test_ingestion_runs_off_the_event_loop(self, client, monkeypatch, path, body):
        monkeypatch.setattr(settings, "zoom_webhook_secret_token", SecretStr("zoom"))

        with patch.object(asyncio, "to_thread", wraps=asyncio.to_thread) as to_thread:
            client.post(path, content=body)

        assert to_thread.call_count == 1


class TestOperationalRoutes:
    @pytest.mark.parametrize("path", ["/health", "/api/v1/health"])
    def test_health(self, client, path):
        resp = client.get(path)
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert resp.json()["processor"] == "fake"

    def test_prometheus_metrics(self, client, factory):
        listing = factory.listing(factory.coach())
        client.get(f"/api/v1/pricing/fee-breakdown/{listing.id}")

        resp = client.get("/metrics/prometheus")

        assert resp.status_code == 200
        assert "text/plain" in resp.headers["content-type"]
        assert b"teachtape_service_operations_total" in resp.content

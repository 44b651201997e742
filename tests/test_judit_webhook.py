from db import models
from habeas.services import judit_webhook
from habeas.services.judit_webhook import handle_judit_webhook, is_ignorable, parse_webhook

CNJ = "12345678920238260100"


def tracking_body(response_id="resp-1", event_type="response_created"):
    return {
        "reference_type": "tracking",
        "reference_id": "trk-1",
        "event_type": event_type,
        "timestamp": "2024-05-01T12:00:00Z",
        "search": {"search_type": "lawsuit_cnj", "search_key": CNJ},
        "payload": {
            "response_id": response_id,
            "response_type": "lawsuit",
            "response_data": {"code": CNJ, "tribunal_acronym": "TJSP"},
        },
    }


def test_completion_notice_is_ignored(db_session):
    body = {"payload": {"response_data": {"message": "REQUEST_COMPLETED", "code": 600}}}
    assert is_ignorable(body)
    assert handle_judit_webhook(db_session, body) == {"status": "ignored"}
    assert db_session.query(models.JuditTrackingHistory).count() == 0


def test_tracking_delivery_creates_history_tracking_and_publication(db_session):
    result = handle_judit_webhook(db_session, tracking_body())

    assert result["status"] == "received"
    assert result["response_id"] == "resp-1"

    history = db_session.query(models.JuditTrackingHistory).one()
    assert history.tracking_id == "trk-1"
    assert history.response_data == {"code": CNJ, "tribunal_acronym": "TJSP"}

    tracking = db_session.query(models.JuditTracking).one()
    assert tracking.status == "updated"
    assert tracking.last_webhook_received_at is not None

    publication = db_session.query(models.Publication).one()
    assert str(publication.id) == result["publication_id"]
    assert publication.status == "nova"
    assert publication.source == "Judit"
    assert publication.process_number == CNJ
    assert publication.external_id == "resp-1"
    assert publication.extra_metadata["trackingId"] == "trk-1"


def test_redelivery_is_idempotent(db_session):
    first = handle_judit_webhook(db_session, tracking_body())
    second = handle_judit_webhook(db_session, tracking_body())

    assert first["publication_id"] == second["publication_id"]
    assert db_session.query(models.JuditTrackingHistory).count() == 1
    assert db_session.query(models.Publication).count() == 1


def test_request_delivery_is_recorded_without_publication(db_session):
    body = {
        "reference_type": "request",
        "reference_id": "req-1",
        "payload": {"response_id": "resp-9", "response_data": {"code": CNJ}},
    }
    result = handle_judit_webhook(db_session, body)

    assert result == {"status": "received", "response_id": "resp-9"}
    assert db_session.query(models.JuditTrackingHistory).one().request_id == "req-1"
    assert db_session.query(models.JuditTracking).count() == 0
    assert db_session.query(models.Publication).count() == 0


def test_deleted_tracking_keeps_its_status(db_session):
    db_session.add(models.JuditTracking(tracking_id="trk-1", status="deleted"))
    db_session.commit()

    handle_judit_webhook(db_session, tracking_body(event_type="response_updating"))

    assert db_session.query(models.JuditTracking).one().status == "deleted"


def test_parse_webhook_defaults():
    event = parse_webhook({"tracking_id": "trk-2", "response_data": {"lawsuit_cnj": CNJ}})
    assert event.tracking_id == "trk-2"
    assert event.response_type == "lawsuit"
    stamp, _, suffix = event.response_id.partition("-")
    assert stamp.isdigit() and len(suffix) == 8
    assert not event.explicit_response_id
    assert event.process_number == CNJ
    assert event.response_data == {"lawsuit_cnj": CNJ}
    assert parse_webhook("lixo") is None


def test_deliveries_without_response_id_get_distinct_ids():
    body = {"tracking_id": "trk-2", "response_data": {"lawsuit_cnj": CNJ}}
    assert parse_webhook(body).response_id != parse_webhook(body).response_id


def test_concurrent_duplicate_is_rolled_back(db_session, monkeypatch):
    db_session.add(models.JuditTrackingHistory(response_id="resp-1", response_type="lawsuit"))
    db_session.commit()
    # a outra entrega gravou entre a verificação e o commit
    monkeypatch.setattr(judit_webhook, "_find_history", lambda db, response_id: None)

    result = handle_judit_webhook(db_session, tracking_body())

    assert result == {"status": "received", "response_id": "resp-1"}
    assert db_session.query(models.JuditTrackingHistory).count() == 1
    assert db_session.query(models.Publication).count() == 0

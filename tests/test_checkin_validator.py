import threading
from datetime import datetime

from eventpass.modules.checkin_validator import CheckInValidator, ConfirmationResult
from eventpass.modules.qr_generator import QRGenerator
from conftest import create_event, register_and_issue


def test_first_scan_confirms_and_second_reports_original_time(db, registrations, issuer, event_id):
    times = iter([datetime(2025, 3, 5, 10, 15, 0), datetime(2025, 3, 5, 10, 20, 0)])
    validator = CheckInValidator(db, clock=lambda: next(times))
    _, credential = register_and_issue(registrations, issuer, event_id, '21BD1A001', name='Asha')

    first = validator.confirm(credential.payload, event_id)
    second = validator.confirm(credential.payload, event_id)

    assert first.outcome == ConfirmationResult.CONFIRMED
    assert first.success
    assert first.student_name == 'Asha'
    assert first.confirmed_at == '2025-03-05 10:15:00'

    assert second.outcome == ConfirmationResult.ALREADY_CONFIRMED
    assert not second.success
    assert second.confirmed_at == '2025-03-05 10:15:00'

    record = issuer.get_credential(credential.token)
    assert record['status'] == 'present'
    assert record['confirmed_at'] == '2025-03-05 10:15:00'


def test_concurrent_scans_confirm_exactly_once(db, registrations, issuer, event_id, qr_generator):
    _, credential = register_and_issue(registrations, issuer, event_id, '21BD1A001')
    scanners = 8
    barrier = threading.Barrier(scanners)
    results = []
    lock = threading.Lock()

    def scan():
        validator = CheckInValidator(db, qr_generator)
        barrier.wait()
        result = validator.confirm(credential.payload, event_id)
        with lock:
            results.append(result)

    threads = [threading.Thread(target=scan) for _ in range(scanners)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    outcomes = [result.outcome for result in results]
    assert outcomes.count(ConfirmationResult.CONFIRMED) == 1
    assert outcomes.count(ConfirmationResult.ALREADY_CONFIRMED) == scanners - 1
    assert len({result.confirmed_at for result in results}) == 1


def test_wrong_event_is_rejected_without_mutation(db, registrations, issuer, validator, club_id, event_id):
    other_event = create_event(db, club_id, 'Workshop')
    _, credential = register_and_issue(registrations, issuer, event_id, '21BD1A001')

    result = validator.confirm(credential.payload, other_event)

    assert result.outcome == ConfirmationResult.REJECTED
    assert result.reason == ConfirmationResult.REASON_WRONG_EVENT
    assert issuer.get_credential(credential.token)['status'] == 'pending'


def test_event_ids_compare_as_strings(registrations, issuer, validator, event_id):
    _, credential = register_and_issue(registrations, issuer, event_id, '21BD1A001')

    result = validator.confirm(credential.payload, str(event_id))

    assert result.outcome == ConfirmationResult.CONFIRMED


def test_malformed_payload_is_rejected(validator, event_id):
    result = validator.confirm('{"token": 42', event_id)

    assert result.outcome == ConfirmationResult.REJECTED
    assert result.reason == ConfirmationResult.REASON_MALFORMED


def test_unknown_token_is_rejected(validator, event_id):
    payload = QRGenerator.encode_scan_payload('forged-token', event_id)

    result = validator.confirm(payload, event_id)

    assert result.outcome == ConfirmationResult.REJECTED
    assert result.reason == ConfirmationResult.REASON_UNKNOWN_CREDENTIAL


def test_result_serialises_with_success_flag(validator, event_id):
    data = validator.confirm('', event_id).to_dict()

    assert data['success'] is False
    assert data['outcome'] == 'rejected'
    assert data['reason'] == 'malformed'

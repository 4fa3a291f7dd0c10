import pytest

from eventpass.modules.event_notifier import EventNotifier, dedupe_recipients
from eventpass.modules.notification_system import Recipient
from conftest import add_member, add_mentor, register_and_issue


@pytest.fixture
def notifier(db, registrations, dispatcher, qr_generator):
    return EventNotifier(db, registrations, dispatcher, qr_generator=qr_generator)


def test_new_event_goes_to_current_members_and_mentors(db, notifier, outbox, club_id, event_id):
    add_member(db, club_id, 'Asha', 'asha@kmit.in', '21BD1A001', year='3')
    add_member(db, club_id, 'Old Timer', 'old@kmit.in', '18BD1A001', year='Pass Out')
    add_member(db, club_id, 'Applicant', 'applicant@kmit.in', '23BD1A001', status='pending')
    add_member(db, club_id, 'No Year', 'noyear@kmit.in', '22BD1A001', year=None)
    add_mentor(db, 'Dr. Rao', 'rao@kmit.in')

    report = notifier.announce_new_event(event_id)

    addresses = [message['address'] for message in outbox.outbox]
    assert addresses == ['asha@kmit.in', 'noyear@kmit.in', 'rao@kmit.in']
    assert report.summary.sent == 3
    assert outbox.outbox[0]['subject'] == 'New Event: Hackathon 2025 - Coding Club'
    assert 'Make sure to register' in outbox.outbox[0]['body']
    assert 'As a mentor' in outbox.outbox[2]['body']


def test_member_who_is_also_mentor_gets_one_email(db, notifier, outbox, club_id, event_id):
    add_member(db, club_id, 'Asha', 'asha@kmit.in', '21BD1A001')
    add_mentor(db, 'Asha', 'ASHA@kmit.in')
    add_mentor(db, 'Nobody', '')

    notifier.announce_new_event(event_id)

    assert [message['address'] for message in outbox.outbox] == ['asha@kmit.in']


def test_event_update_goes_to_registrants(notifier, outbox, registrations, issuer, event_id):
    register_and_issue(registrations, issuer, event_id, '21BD1A001')
    register_and_issue(registrations, issuer, event_id, '21BD1A002')

    report = notifier.announce_event_update(event_id, 'Venue change', 'Now in Hall B\nBring ID')

    assert report.summary.sent == 2
    assert outbox.outbox[0]['subject'] == 'Hackathon 2025: Venue change'
    assert 'Now in Hall B<br>' in outbox.outbox[0]['body']


def test_event_update_requires_subject_and_message(notifier, event_id):
    with pytest.raises(ValueError):
        notifier.announce_event_update(event_id, ' ', 'body')


def test_certificates_ready_attaches_pdf(notifier, outbox, certificates, registrations,
                                         issuer, validator, event_id):
    _, credential = register_and_issue(registrations, issuer, event_id, '21BD1A001', name='Asha')
    validator.confirm(credential.payload, event_id)
    result = certificates.issue_certificates(event_id)

    report = notifier.notify_certificates_ready(event_id, result.issued)

    assert report.summary.sent == 1
    attachment = outbox.outbox[0]['attachments'][0]
    assert attachment.filename == 'Certificate_Asha_Hackathon_2025.pdf'
    assert attachment.mimetype == 'application/pdf'
    assert attachment.content.startswith(b'%PDF')


def test_registration_pass_attaches_qr(notifier, outbox, registrations, issuer, event_id):
    registration, credential = register_and_issue(registrations, issuer, event_id, '21BD1A001')

    report = notifier.send_registration_pass(registration, credential)

    assert report.summary.sent == 1
    message = outbox.outbox[0]
    assert message['address'] == '21bd1a001@kmit.in'
    assert message['attachments'][0].filename == 'qr-code.png'
    assert '21BD1A001' in message['body']


def test_dedupe_keeps_first_and_drops_blank():
    unique = dedupe_recipients([
        Recipient('A', 'a@kmit.in'),
        Recipient('B', ''),
        Recipient('A again', 'A@KMIT.IN'),
        Recipient('C', 'c@kmit.in'),
    ])

    assert [recipient.name for recipient in unique] == ['A', 'C']


def test_certificates_sharing_an_address_each_get_an_email(notifier, outbox, certificates,
                                                           registrations, issuer, validator, event_id):
    for roll_number, name in (('21BD1A001', 'Asha'), ('21BD1A002', 'Ravi')):
        _, credential = register_and_issue(registrations, issuer, event_id, roll_number,
                                           name=name, email='family@kmit.in')
        validator.confirm(credential.payload, event_id)
    result = certificates.issue_certificates(event_id)

    report = notifier.notify_certificates_ready(event_id, result.issued)

    assert len(result.issued) == 2
    assert report.summary.total == 2
    assert report.summary.sent == 2
    filenames = sorted(message['attachments'][0].filename for message in outbox.outbox)
    assert filenames == ['Certificate_Asha_Hackathon_2025.pdf', 'Certificate_Ravi_Hackathon_2025.pdf']


def test_repeated_certificate_row_is_sent_once(notifier, outbox, event_id):
    row = {'student_name': 'Asha', 'student_email': 'asha@kmit.in', 'roll_number': '21BD1A001'}

    report = notifier.notify_certificates_ready(event_id, [row, dict(row)])

    assert report.summary.total == 1
    assert len(outbox.outbox) == 1


def test_dedupe_by_custom_key_keeps_shared_addresses():
    unique = dedupe_recipients(
        [
            Recipient('A', 'home@kmit.in', {'roll_number': '1'}),
            Recipient('B', 'home@kmit.in', {'roll_number': '2'}),
            Recipient('A again', 'a@kmit.in', {'roll_number': '1'}),
        ],
        key=lambda recipient: recipient.context['roll_number']
    )

    assert [recipient.name for recipient in unique] == ['A', 'B']

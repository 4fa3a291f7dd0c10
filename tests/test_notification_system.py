import threading

import pytest

from eventpass.modules.notification_system import (
    Attachment,
    DispatchOutcome,
    MessageTemplate,
    NotificationDispatcher,
    OutboxTransport,
    Recipient,
    SMTPTransport,
)
from conftest import FlakyTransport, RecordingSleep


def make_template(**kwargs):
    return MessageTemplate(
        name='test',
        subject='Hello {{ recipient.name }}',
        body='<p>{{ greeting }} {{ recipient.name }}</p>',
        params={'greeting': 'Hi'},
        **kwargs
    )


def recipients(*addresses):
    return [Recipient(name=address.split('@')[0], address=address) for address in addresses]


def test_one_failing_recipient_does_not_stop_the_job():
    transport = FlakyTransport(always_fail={'b@kmit.in'})
    sleep = RecordingSleep()
    dispatcher = NotificationDispatcher(transport, max_retries=2, retry_delay=1.0,
                                        throttle_delay=2.0, sleep=sleep)

    report = dispatcher.dispatch(recipients('a@kmit.in', 'b@kmit.in', 'c@kmit.in'), make_template())

    assert [outcome.status for outcome in report.results] == ['sent', 'failed', 'sent']
    assert [outcome.attempts for outcome in report.results] == [1, 3, 1]
    assert 'b@kmit.in' in report.results[1].error
    assert report.summary.total == 3
    assert report.summary.sent == 2
    assert report.summary.failed == 1
    assert transport.calls.count('b@kmit.in') == 3
    # two retry pauses for b, throttle between recipients only
    assert sleep.calls == [2.0, 1.0, 1.0, 2.0]


def test_recovered_send_is_reported_as_retried():
    transport = FlakyTransport(failures={'a@kmit.in': 1})
    dispatcher = NotificationDispatcher(transport, sleep=RecordingSleep())

    report = dispatcher.dispatch(recipients('a@kmit.in'), make_template())

    assert report.results[0].status == DispatchOutcome.RETRIED
    assert report.results[0].attempts == 2
    assert report.summary.retried == 1
    assert report.summary.sent == 0


def test_attempts_are_bounded_by_max_retries():
    transport = FlakyTransport(always_fail={'a@kmit.in'})
    dispatcher = NotificationDispatcher(transport, max_retries=0, sleep=RecordingSleep())

    report = dispatcher.dispatch(recipients('a@kmit.in'), make_template())

    assert report.results[0].status == DispatchOutcome.FAILED
    assert report.results[0].attempts == 1
    assert transport.calls == ['a@kmit.in']


def test_negative_retries_are_rejected():
    with pytest.raises(ValueError):
        NotificationDispatcher(OutboxTransport(), max_retries=-1)


def test_no_throttle_after_single_recipient():
    sleep = RecordingSleep()
    dispatcher = NotificationDispatcher(OutboxTransport(), sleep=sleep)

    dispatcher.dispatch(recipients('a@kmit.in'), make_template())

    assert sleep.calls == []


def test_empty_recipient_list():
    dispatcher = NotificationDispatcher(OutboxTransport(), sleep=RecordingSleep())

    report = dispatcher.dispatch([], make_template())

    assert report.results == []
    assert report.summary.total == 0


def test_template_renders_per_recipient_with_escaping(outbox):
    dispatcher = NotificationDispatcher(outbox, sleep=RecordingSleep())
    people = [Recipient(name='<Asha>', address='a@kmit.in'), Recipient(name='Ravi', address='r@kmit.in')]

    dispatcher.dispatch(people, make_template())

    assert outbox.outbox[0]['subject'] == 'Hello <Asha>'
    assert '&lt;Asha&gt;' in outbox.outbox[0]['body']
    assert outbox.outbox[1]['body'] == '<p>Hi Ravi</p>'


def test_cancellation_stops_before_next_recipient():
    cancel = threading.Event()
    transport = FlakyTransport()

    def sleep(seconds):
        cancel.set()

    dispatcher = NotificationDispatcher(transport, throttle_delay=2.0, sleep=sleep)

    report = dispatcher.dispatch(recipients('a@kmit.in', 'b@kmit.in', 'c@kmit.in'),
                                 make_template(), cancel_event=cancel)

    assert [outcome.address for outcome in report.results] == ['a@kmit.in']
    assert report.summary.cancelled
    assert report.summary.skipped == 2
    assert transport.calls == ['a@kmit.in']


def test_render_failure_marks_recipient_failed_without_sending():
    transport = FlakyTransport()

    def broken(recipient):
        if recipient.address == 'a@kmit.in':
            raise RuntimeError('pdf failed')
        return [Attachment('x.txt', b'x', 'text/plain')]

    dispatcher = NotificationDispatcher(transport, sleep=RecordingSleep())
    report = dispatcher.dispatch(recipients('a@kmit.in', 'b@kmit.in'), make_template(attachments=broken))

    assert report.results[0].status == DispatchOutcome.FAILED
    assert report.results[0].attempts == 0
    assert report.results[1].status == DispatchOutcome.SENT
    assert transport.calls == ['b@kmit.in']
    assert transport.delivered[0]['attachments'][0].filename == 'x.txt'


def test_report_serialises():
    dispatcher = NotificationDispatcher(OutboxTransport(), sleep=RecordingSleep())

    data = dispatcher.dispatch(recipients('a@kmit.in'), make_template()).to_dict()

    assert data['summary']['sent'] == 1
    assert data['results'][0] == {
        'address': 'a@kmit.in', 'name': 'a', 'status': 'sent', 'attempts': 1, 'error': None
    }


def test_smtp_message_includes_attachment():
    transport = SMTPTransport('localhost', sender='clubs@kmit.in')

    msg = transport.build_message('a@kmit.in', 'Subject', '<p>Body</p>',
                                  [Attachment('qr-code.png', b'\x89PNG', 'image/png')])

    assert msg['To'] == 'a@kmit.in'
    assert msg['From'] == 'clubs@kmit.in'
    parts = msg.get_payload()
    assert parts[1].get_filename() == 'qr-code.png'
    assert parts[1].get_content_type() == 'image/png'


def test_recipient_without_address_fails_without_sending():
    transport = FlakyTransport()
    dispatcher = NotificationDispatcher(transport, sleep=RecordingSleep())

    report = dispatcher.dispatch([Recipient('Nobody', ''), Recipient('A', 'a@kmit.in')], make_template())

    assert report.results[0].status == DispatchOutcome.FAILED
    assert report.results[0].attempts == 0
    assert report.results[0].error == 'No email address'
    assert report.summary.total == 2
    assert transport.calls == ['a@kmit.in']

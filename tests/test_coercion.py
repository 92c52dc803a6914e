from datetime import datetime

from tiffinhub.entities.coercion import coerce_payload, parse_number


def test_numeric_strings_become_numbers():
    data = coerce_payload({'current_stock': '10', 'price': '12.5', 'paid_days': ' 30 '})
    assert data == {'current_stock': 10, 'price': 12.5, 'paid_days': 30}


def test_unparsable_numbers_become_null():
    data = coerce_payload({'price': 'abc', 'amount': '', 'rating': 'inf', 'quantity': '   '})
    assert data == {'price': None, 'amount': None, 'rating': None, 'quantity': None}


def test_boolean_strings():
    data = coerce_payload({'is_active': '1', 'active': 'true', 'is_paused': 'yes', 'read': 'TRUE'})
    assert data == {'is_active': True, 'active': True, 'is_paused': False, 'read': False}


def test_empty_boolean_becomes_null():
    assert coerce_payload({'is_trial': ''}) == {'is_trial': None}


def test_date_only_is_utc_midnight():
    assert coerce_payload({'start_date': '2026-01-01'})['start_date'] == datetime(2026, 1, 1)


def test_timestamps_are_normalised_to_utc():
    data = coerce_payload({
        'end_date': '2026-03-10T08:30:00Z',
        'due_date': '2026-03-10T08:30:00+04:00',
    })
    assert data['end_date'] == datetime(2026, 3, 10, 8, 30)
    assert data['due_date'] == datetime(2026, 3, 10, 4, 30)


def test_bad_or_empty_dates_become_null():
    data = coerce_payload({'end_date': 'not a date', 'due_date': ''})
    assert data == {'end_date': None, 'due_date': None}


def test_untyped_fields_pass_through():
    payload = {'full_name': '', 'notes': '10', 'skip_date': '2026-01-01'}
    assert coerce_payload(payload) == payload


def test_input_is_not_mutated():
    payload = {'price': '5'}
    coerce_payload(payload)
    assert payload == {'price': '5'}


def test_parse_number_prefers_int():
    assert parse_number('7') == 7
    assert isinstance(parse_number('7'), int)
    assert parse_number('7.0') == 7.0
    assert parse_number('nan') is None

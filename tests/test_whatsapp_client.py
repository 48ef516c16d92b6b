from unittest.mock import MagicMock

import pytest
import requests

from whatsapp.client import WhatsAppClient

CONFIG = {
    'whatsapp_token': 'token-123',
    'phone_number_id': '1098765',
    'verify_token': 'musuq_verify_token',
}


@pytest.fixture
def client():
    wa = WhatsAppClient(CONFIG)
    wa.session = MagicMock()
    wa.session.request.return_value = MagicMock(status_code=200, text='{}')
    return wa


def _payload(messages, contacts=None, phone_number_id='1098765'):
    value = {'metadata': {'phone_number_id': phone_number_id}, 'messages': messages}
    if contacts:
        value['contacts'] = contacts
    return {'entry': [{'changes': [{'field': 'messages', 'value': value}]}]}


def test_send_text_message(client):
    assert client.send_text_message('51987654321', 'Hola') is True

    method, url = client.session.request.call_args[0]
    kwargs = client.session.request.call_args[1]
    assert method == 'POST'
    assert url.endswith('/1098765/messages')
    assert kwargs['json']['text'] == {'body': 'Hola'}
    assert kwargs['headers']['Authorization'] == 'Bearer token-123'


@pytest.mark.parametrize("status_code", [400, 401, 403, 429, 500])
def test_send_failure_returns_false(client, status_code):
    client.session.request.return_value = MagicMock(status_code=status_code, text='error')

    assert client.send_text_message('51987654321', 'Hola') is False
    assert client.session.request.call_count == 1


def test_transport_error_is_not_raised(client):
    client.session.request.side_effect = requests.exceptions.ConnectionError('down')

    assert client.send_text_message('51987654321', 'Hola') is False


def test_interactive_response_falls_back_to_text(client):
    client.session.request.side_effect = [
        MagicMock(status_code=400, text='bad interactive'),
        MagicMock(status_code=200, text='{}'),
    ]
    response = {
        'type': 'interactive_buttons',
        'content': '¿Confirmas tu pedido?\n1. ✅ Confirmar\n2. ✏️ Modificar',
        'body_text': '¿Confirmas tu pedido?',
        'buttons': [{'type': 'reply', 'reply': {'id': '1', 'title': 'Confirmar'}}],
    }

    assert client.send_response('51987654321', response) is True

    first, second = client.session.request.call_args_list
    assert first[1]['json']['type'] == 'interactive'
    assert second[1]['json']['text']['body'].startswith('¿Confirmas tu pedido?')


def test_too_many_buttons_are_rejected(client):
    buttons = [{'type': 'reply', 'reply': {'id': str(i), 'title': str(i)}} for i in range(4)]

    assert client.send_interactive_message('51987654321', '', 'Elige', '', buttons) is False
    client.session.request.assert_not_called()


def test_verify_webhook(client):
    assert client.verify_webhook('subscribe', 'musuq_verify_token', 'abc') == 'abc'
    assert client.verify_webhook('subscribe', 'wrong', 'abc') is None


def test_validate_webhook_payload(client):
    assert client.validate_webhook_payload(_payload([])) is True
    assert client.validate_webhook_payload({'object': 'whatsapp_business_account'}) is False
    assert client.validate_webhook_payload(None) is False


def test_webhook_data_converts_button_replies_and_attaches_contacts(client):
    payload = _payload(
        [
            {'from': '51987654321', 'id': 'wamid.1', 'type': 'interactive',
             'interactive': {'type': 'button_reply', 'button_reply': {'id': '1', 'title': 'Confirmar'}}},
            {'from': '51987654321', 'id': 'wamid.2', 'type': 'location',
             'location': {'latitude': -13.53, 'longitude': -71.96}},
        ],
        contacts=[{'profile': {'name': 'Ana'}, 'wa_id': '51987654321'}]
    )

    messages = client.get_webhook_data(payload)

    assert messages[0]['type'] == 'text'
    assert messages[0]['text'] == {'body': '1'}
    assert messages[0]['contacts'][0]['profile']['name'] == 'Ana'
    assert messages[1]['location'] == {'latitude': -13.53, 'longitude': -71.96}


def test_webhook_data_ignores_other_phone_numbers(client):
    payload = _payload([{'from': '51987654321', 'id': 'wamid.1', 'type': 'text',
                         'text': {'body': 'hola'}}], phone_number_id='999')

    assert client.get_webhook_data(payload) == []

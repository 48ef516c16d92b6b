import pytest

from config.settings import BotConfig

BASE_ENV = {
    'WHATSAPP_TOKEN': 'token-123',
    'PHONE_NUMBER_ID': '+1098765',
}


def test_defaults():
    config = BotConfig(dict(BASE_ENV))

    assert config.phone_number_id == '1098765'
    assert config.verify_token == 'musuq_verify_token'
    assert config.db_path == 'musuq_delivery.db'
    assert config.delivery_api_url is None
    assert (config.delivery_base_fee, config.delivery_fee_per_km) == (3.00, 1.00)
    assert config.session_idle_timeout == 1800
    assert config.address_book_enabled is True
    assert config.interactive_prompts_enabled is True
    assert config.support_phone == '+51 999 999 999'
    assert config.port == 5000


def test_overrides():
    env = dict(BASE_ENV, ADDRESS_BOOK_ENABLED='false', INTERACTIVE_PROMPTS_ENABLED='0',
               DELIVERY_API_URL='https://pricing.example/api', SESSION_IDLE_TIMEOUT='600',
               LOG_LEVEL='debug')

    config = BotConfig(env).get_config_dict()

    assert config['address_book_enabled'] is False
    assert config['interactive_prompts_enabled'] is False
    assert config['delivery_api_url'] == 'https://pricing.example/api'
    assert config['session_idle_timeout'] == 600
    assert config['log_level'] == 'DEBUG'


@pytest.mark.parametrize("env", [
    {'PHONE_NUMBER_ID': '1098765'},
    {'WHATSAPP_TOKEN': 'token-123'},
    dict(BASE_ENV, PORT='http'),
    dict(BASE_ENV, SESSION_IDLE_TIMEOUT='0'),
    dict(BASE_ENV, ADDRESS_BOOK_ENABLED='maybe'),
    dict(BASE_ENV, DELIVERY_FEE_PER_KM='-1'),
    dict(BASE_ENV, DELIVERY_API_URL='ftp://pricing'),
    dict(BASE_ENV, PHONE_NUMBER_ID='abc'),
])
def test_invalid_configuration_raises(env):
    with pytest.raises(ValueError):
        BotConfig(env)

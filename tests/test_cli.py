import io
import json
import logging
import sys

import pytest

from kvcrypt import cli
from kvcrypt.errors import KMSStoreError
from kvcrypt.logging.json_logger import JSONFormatter, configure_json_logging


@pytest.fixture
def env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('KV_BACKEND', 'file')
    monkeypatch.setenv('KV_FILE_PATH', str(tmp_path / 'kv'))
    monkeypatch.setenv('KMS_PROVIDER', 'file')
    monkeypatch.setenv('KMS_FILE_PATH', str(tmp_path / 'kms.key'))
    monkeypatch.setenv('AWS_KMS_KEY_ID', 'alias/cli')
    monkeypatch.setenv('LOG_LEVEL', 'WARNING')
    yield tmp_path
    root = logging.getLogger()
    for h in [h for h in root.handlers if getattr(h, '_kvcrypt_json', False)]:
        root.removeHandler(h)


def test_set_then_get(env, capsys):
    assert cli.main(['set', 'password', 'secret ']) == 0
    assert (env / 'kv' / 'password').exists()

    assert cli.main(['get', 'password']) == 0
    assert capsys.readouterr().out == 'secret\n'


def test_set_from_stdin(env, capsys, monkeypatch):
    monkeypatch.setattr('sys.stdin', io.TextIOWrapper(io.BytesIO(b'from stdin\n')))
    assert cli.main(['set', 'token']) == 0
    assert cli.main(['get', 'token']) == 0
    assert capsys.readouterr().out == 'from stdin\n'


def test_get_missing_key(env, capsys):
    assert cli.main(['get', 'missing']) == 1
    assert 'failed to get data for key-management client' in capsys.readouterr().err


def test_missing_key_id(env, capsys, monkeypatch):
    monkeypatch.setenv('AWS_KMS_KEY_ID', '')
    assert cli.main(['set', 'k', 'v']) == 1
    assert 'invalid KMS key id' in capsys.readouterr().err


def test_usage_error():
    with pytest.raises(SystemExit) as exc:
        cli.main([])
    assert exc.value.code == 2


def test_json_formatter():
    record = logging.LogRecord('kvcrypt.test', logging.INFO, __file__, 1, 'stored %s', ('k',), None)
    payload = json.loads(JSONFormatter().format(record))
    assert payload['level'] == 'INFO'
    assert payload['logger'] == 'kvcrypt.test'
    assert payload['message'] == 'stored k'


def test_configure_json_logging_does_not_stack_handlers():
    root = logging.getLogger()
    try:
        configure_json_logging()
        configure_json_logging(siem_endpoint='siem.local:8080', level=logging.DEBUG)
        ours = [h for h in root.handlers if getattr(h, '_kvcrypt_json', False)]
        assert len(ours) == 2
        assert root.level == logging.DEBUG
    finally:
        for h in [h for h in root.handlers if getattr(h, '_kvcrypt_json', False)]:
            root.removeHandler(h)
        root.setLevel(logging.WARNING)


def test_configure_json_logging_bad_endpoint():
    with pytest.raises(ValueError):
        configure_json_logging(siem_endpoint='no-port')
    root = logging.getLogger()
    for h in [h for h in root.handlers if getattr(h, '_kvcrypt_json', False)]:
        root.removeHandler(h)


def test_aws_provider_without_region(env, capsys, monkeypatch):
    monkeypatch.setenv('KV_BACKEND', 'memory')
    monkeypatch.setenv('KMS_PROVIDER', 'aws')
    monkeypatch.delenv('AWS_REGION', raising=False)
    monkeypatch.delenv('AWS_DEFAULT_REGION', raising=False)
    monkeypatch.delenv('AWS_PROFILE', raising=False)
    monkeypatch.setenv('AWS_CONFIG_FILE', str(env / 'no-aws-config'))
    assert cli.main(['set', 'k', 'v']) == 1
    assert 'failed to create KMS client' in capsys.readouterr().err


def test_unwritable_local_kms_key(env, capsys, monkeypatch):
    monkeypatch.setenv('KMS_FILE_PATH', str(env / 'missing-dir' / 'kms.key'))
    assert cli.main(['set', 'k', 'v']) == 1
    assert 'cannot open local KMS key' in capsys.readouterr().err


def test_json_formatter_reports_store_stage():
    try:
        raise KMSStoreError('decrypt', 'failed to decrypt with key-management client', RuntimeError('denied'))
    except KMSStoreError:
        record = logging.LogRecord('kvcrypt.test', logging.ERROR, __file__, 1, 'read failed', (), sys.exc_info())
    payload = json.loads(JSONFormatter().format(record))
    assert payload['stage'] == 'decrypt'
    assert 'failed to decrypt with key-management client: denied' in payload['exc_info']
    assert 'stage' not in json.loads(JSONFormatter().format(
        logging.LogRecord('kvcrypt.test', logging.INFO, __file__, 1, 'ok', (), None)))

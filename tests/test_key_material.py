"""
Test suite for key material resolution.
"""

import os
import shutil
import tempfile
from pathlib import Path

import pytest

from key_material import (
    EnvironmentProvider,
    InvalidKeyId,
    KeyFileNotFound,
    KeyMaterialRequest,
    KeyMaterialResolver,
    MissingKeyFilePolicy,
    PassphraseDecryptError,
    SecretBuffer,
    ServerSettings,
    SettingsStore,
    expand_user_home,
    parse_key_id,
)


class TestEnvironmentProvider:
    """Test cases for EnvironmentProvider."""

    def test_value_is_trimmed(self):
        """Test that values are trimmed."""
        env = EnvironmentProvider.from_mapping({'SIGN_KEY_ID': '  ABCD  '})
        assert env.get_env('SIGN_KEY_ID') == 'ABCD'

    @pytest.mark.parametrize('value', ['', '   ', 'null', ' null '])
    def test_blank_and_null_are_unset(self, value):
        """Test that blank and "null" values count as unset."""
        env = EnvironmentProvider.from_mapping({'SIGN_KEY_PASS': value})
        assert env.get_env('SIGN_KEY_PASS') is None

    def test_missing_variable(self):
        """Test an undefined variable."""
        assert EnvironmentProvider.from_mapping({}).get_env('SIGN_KEY') is None

    def test_process_environment_is_default(self, monkeypatch):
        """Test that os.environ is read by default."""
        monkeypatch.setenv('SIGN_KEY_ID', 'C0FFEE')
        assert EnvironmentProvider().get_env('SIGN_KEY_ID') == 'C0FFEE'


class TestParseKeyId:
    """Test cases for key id parsing."""

    def test_plain_hex(self):
        """Test a plain hex key id."""
        assert parse_key_id('ABCDEF0123456789') == 0xABCDEF0123456789

    def test_prefixed_and_lowercase(self):
        """Test a 0x prefixed lowercase key id."""
        assert parse_key_id('0xabcdef0123456789') == 0xABCDEF0123456789

    def test_short_id(self):
        """Test a short key id."""
        assert parse_key_id('1234') == 0x1234

    def test_full_64_bits(self):
        """Test the largest 64-bit key id."""
        assert parse_key_id('FFFFFFFFFFFFFFFF') == (1 << 64) - 1

    @pytest.mark.parametrize('value', ['xyz', '', '0x', '12 34', '1FFFFFFFFFFFFFFFF'])
    def test_invalid(self, value):
        """Test that malformed key ids are rejected."""
        with pytest.raises(InvalidKeyId) as exc_info:
            parse_key_id(value)
        assert exc_info.value.key_id == value

    def test_invalid_is_value_error(self):
        """Test that InvalidKeyId is a ValueError."""
        with pytest.raises(ValueError):
            parse_key_id('not-hex')


class TestSecretBuffer:
    """Test cases for SecretBuffer."""

    def test_clear_zeroes_and_empties(self):
        """Test that clear() zeroes the buffer before emptying it."""
        buffer = SecretBuffer(b'secret')
        view = buffer.value
        buffer.clear()
        assert len(buffer) == 0
        assert not buffer
        assert view == bytearray()

    def test_repr_hides_content(self):
        """Test that repr() hides the content."""
        buffer = SecretBuffer('passphrase')
        assert 'passphrase' not in repr(buffer)
        assert 'passphrase' not in str(buffer)

    def test_context_manager_clears(self):
        """Test that leaving the context clears the buffer."""
        with SecretBuffer(b'abc') as buffer:
            assert bytes(buffer.value) == b'abc'
        assert len(buffer) == 0

    def test_from_optional(self):
        """Test building a buffer from an optional string."""
        assert SecretBuffer.from_optional(None) is None
        assert SecretBuffer.from_optional('x') == SecretBuffer(b'x')


class TestExpandUserHome:
    """Test cases for home directory expansion."""

    def test_tilde_prefix(self):
        """Test expanding a ~/ prefix."""
        assert expand_user_home('~/keys/sign.asc', '/home/builder') == Path('/home/builder/keys/sign.asc')

    def test_other_paths_unchanged(self):
        """Test that other paths are kept."""
        assert expand_user_home('/etc/key.asc', '/home/builder') == Path('/etc/key.asc')
        assert expand_user_home('keys/~/a', '/home/builder') == Path('keys/~/a')

    def test_default_home(self):
        """Test the default home directory."""
        assert expand_user_home('~/x') == Path.home() / 'x'


class TestSettingsStore:
    """Test cases for the YAML settings store."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write(self, content):
        path = os.path.join(self.temp_dir, 'settings.yaml')
        with open(path, 'w') as f:
            f.write(content)
        return path

    def test_load_servers(self):
        """Test loading server entries."""
        path = self.write(
            "servers:\n"
            "  - id: release\n"
            "    username: 'ABCDEF0123456789'\n"
            "    passphrase: secret\n"
            "    privateKey: ~/release.asc\n"
            "  - id: other\n"
        )
        store = SettingsStore.from_yaml(path)

        server = store.get_server('release')
        assert server == ServerSettings('release', 'ABCDEF0123456789', 'secret', '~/release.asc')
        assert store.get_server('other').private_key is None
        assert store.get_server('unknown') is None

    def test_snake_case_private_key(self):
        """Test the private_key spelling."""
        server = ServerSettings.from_dict({'id': 's', 'private_key': '/k.asc'})
        assert server.private_key == '/k.asc'

    def test_entry_without_id(self):
        """Test that an entry without id is rejected."""
        with pytest.raises(ValueError):
            ServerSettings.from_dict({'username': 'x'})

    def test_missing_file(self):
        """Test that a missing settings file raises."""
        with pytest.raises(FileNotFoundError):
            SettingsStore.from_yaml(os.path.join(self.temp_dir, 'missing.yaml'))

    def test_servers_must_be_list(self):
        """Test that servers must be a list."""
        path = self.write("servers:\n  id: release\n")
        with pytest.raises(ValueError):
            SettingsStore.from_yaml(path)

    def test_empty_document(self):
        """Test an empty settings document."""
        store = SettingsStore.from_yaml(self.write(""))
        assert store.get_server('release') is None


class TestKeyMaterialResolver:
    """Test cases for KeyMaterialResolver precedence and key file handling."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.key_path = os.path.join(self.temp_dir, 'key.asc')
        with open(self.key_path, 'wb') as f:
            f.write(b'file-key')

    def teardown_method(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def resolver(self, env=None, **kwargs):
        return KeyMaterialResolver(environment=EnvironmentProvider.from_mapping(env or {}), **kwargs)

    def test_explicit_values(self):
        """Test explicitly configured values."""
        request = KeyMaterialRequest(key_id='0x1234', key_pass='pass', key_file=self.key_path)
        material = self.resolver().resolve(request)

        assert material.key_id == 0x1234
        assert bytes(material.passphrase.value) == b'pass'
        assert bytes(material.key.value) == b'file-key'
        assert material.key_available

    def test_environment_overrides_each_value(self):
        """Test that each environment variable overrides its value."""
        env = {'SIGN_KEY_ID': 'ABCD', 'SIGN_KEY_PASS': 'env-pass', 'SIGN_KEY': 'env-key'}
        request = KeyMaterialRequest(key_id='1234', key_pass='pass', key_file=self.key_path)
        material = self.resolver(env).resolve(request)

        assert material.key_id == 0xABCD
        assert bytes(material.passphrase.value) == b'env-pass'
        assert bytes(material.key.value) == b'env-key'

    def test_null_environment_falls_back_to_explicit(self):
        """Test that "null" variables fall back to configuration."""
        env = {'SIGN_KEY_ID': 'null', 'SIGN_KEY_PASS': '', 'SIGN_KEY': '  '}
        request = KeyMaterialRequest(key_id='1234', key_pass='pass', key_file=self.key_path)
        material = self.resolver(env).resolve(request)

        assert material.key_id == 0x1234
        assert bytes(material.passphrase.value) == b'pass'
        assert bytes(material.key.value) == b'file-key'

    def test_nothing_configured(self):
        """Test resolution with nothing configured."""
        material = self.resolver().resolve(KeyMaterialRequest())

        assert material.key_id is None
        assert material.passphrase is None
        assert not material.key_available

    def test_settings_store_replaces_explicit_fields(self):
        """Test that a server entry replaces explicit values."""
        store = SettingsStore([ServerSettings('release', 'BEEF', 'store-pass', self.key_path)])
        request = KeyMaterialRequest(server_id='release', key_id='1234', key_pass='pass',
                                     key_file='/does/not/exist')
        material = self.resolver(settings_store=store).resolve(request)

        assert material.key_id == 0xBEEF
        assert bytes(material.passphrase.value) == b'store-pass'
        assert bytes(material.key.value) == b'file-key'

    def test_unknown_server_id_ignores_explicit_fields(self):
        """Test an unknown server id."""
        request = KeyMaterialRequest(server_id='missing', key_id='1234', key_pass='pass',
                                     key_file=self.key_path)
        material = self.resolver(settings_store=SettingsStore()).resolve(request)

        assert material.key_id is None
        assert material.passphrase is None
        assert not material.key_available

    def test_environment_overrides_settings_store(self):
        """Test that the environment wins over the settings store."""
        store = SettingsStore([ServerSettings('release', 'BEEF', 'store-pass', self.key_path)])
        material = self.resolver({'SIGN_KEY_ID': 'CAFE'}, settings_store=store).resolve(
            KeyMaterialRequest(server_id='release'))

        assert material.key_id == 0xCAFE
        assert bytes(material.passphrase.value) == b'store-pass'

    def test_invalid_key_id(self):
        """Test that an invalid key id is rejected."""
        with pytest.raises(InvalidKeyId):
            self.resolver({'SIGN_KEY_ID': 'nothex'}).resolve(KeyMaterialRequest())

    def test_passphrase_decryptor(self):
        """Test that the passphrase goes through the decryptor."""
        resolver = self.resolver(passphrase_decryptor=lambda value: value[::-1])
        material = resolver.resolve(KeyMaterialRequest(key_pass='ssap'))
        assert bytes(material.passphrase.value) == b'pass'

    def test_passphrase_decryptor_failure(self):
        """Test that a decryptor failure is reported."""
        def decryptor(value):
            raise RuntimeError("bad master password")

        with pytest.raises(PassphraseDecryptError) as exc_info:
            self.resolver(passphrase_decryptor=decryptor).resolve(KeyMaterialRequest(key_pass='{x}'))
        assert 'Invalid encrypted password' in str(exc_info.value)
        assert 'bad master password' in str(exc_info.value)

    def test_decryptor_not_called_without_passphrase(self):
        """Test that the decryptor is skipped without passphrase."""
        calls = []
        resolver = self.resolver(passphrase_decryptor=calls.append)
        resolver.resolve(KeyMaterialRequest())
        assert calls == []

    def test_missing_key_file_is_unavailable_by_default(self):
        """Test that a missing key file means no key."""
        request = KeyMaterialRequest(key_file=os.path.join(self.temp_dir, 'missing.asc'))
        material = self.resolver().resolve(request)
        assert not material.key_available

    def test_missing_key_file_fail_policy(self):
        """Test the fail policy for a missing key file."""
        missing = os.path.join(self.temp_dir, 'missing.asc')
        resolver = self.resolver(missing_key_file=MissingKeyFilePolicy.FAIL)

        with pytest.raises(KeyFileNotFound) as exc_info:
            resolver.resolve(KeyMaterialRequest(key_file=missing))
        assert exc_info.value.path == Path(missing)
        assert isinstance(exc_info.value, OSError)

    def test_key_file_in_home_directory(self):
        """Test a key file below the home directory."""
        material = self.resolver(home_directory=self.temp_dir).resolve(
            KeyMaterialRequest(key_file='~/key.asc'))
        assert bytes(material.key.value) == b'file-key'

    def test_environment_key_non_ascii_is_replaced(self):
        """Test that non-ASCII characters of an environment key are replaced."""
        material = self.resolver({'SIGN_KEY': 'kéy'}).resolve(KeyMaterialRequest())
        assert bytes(material.key.value) == b'k?y'

    def test_clear(self):
        """Test that clear() scrubs key and passphrase."""
        material = self.resolver().resolve(KeyMaterialRequest(key_pass='pass', key_file=self.key_path))
        passphrase, key = material.passphrase, material.key

        material.clear()

        assert len(passphrase) == 0
        assert len(key) == 0
        assert not material.key_available

    def test_request_repr_masks_passphrase(self):
        """Test that repr() of a request hides the passphrase."""
        request = KeyMaterialRequest(key_pass='hunter2')
        assert 'hunter2' not in repr(request)

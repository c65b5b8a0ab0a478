"""Tests for authorization event verification."""

from __future__ import annotations

import base64

import pytest

from bss.auth.verifier import IdentityVerifier, NoopSignatureVerifier, SignatureVerifier
from bss.exceptions import (
    AuthenticationError,
    CredentialExpiredError,
    IdentityNotAuthorizedError,
    IncompleteCredentialError,
    InvalidSignatureError,
    MalformedCredentialError,
    MissingCredentialError,
    WrongCredentialKindError,
)
from bss.types import AuthorizationEvent, ServerPolicy

from conftest import OTHER, OWNER, FakeClock


@pytest.fixture
def verifier(clock: FakeClock) -> IdentityVerifier:
    return IdentityVerifier(clock=clock)


class TestCredentialPresence:
    """Tests for absent credentials."""

    def test_missing_header_optional(self, verifier: IdentityVerifier, policy: ServerPolicy):
        """Test that an absent header is anonymous when not required."""
        identity = verifier.verify(None, policy, required=False)
        assert identity.is_anonymous
        assert identity.pubkey is None

    def test_missing_header_required(self, verifier: IdentityVerifier, policy: ServerPolicy):
        """Test that an absent header fails when required."""
        with pytest.raises(MissingCredentialError):
            verifier.verify(None, policy, required=True)

    def test_empty_header_required(self, verifier: IdentityVerifier, policy: ServerPolicy):
        """Test that an empty header counts as absent."""
        with pytest.raises(MissingCredentialError):
            verifier.verify("", policy)


class TestCredentialFormat:
    """Tests for envelope decoding."""

    def test_wrong_scheme(self, verifier: IdentityVerifier, policy: ServerPolicy, make_auth):
        """Test that a non-Nostr scheme is malformed."""
        header = make_auth().replace("Nostr ", "Bearer ", 1)
        with pytest.raises(MalformedCredentialError):
            verifier.verify(header, policy)

    def test_invalid_base64(self, verifier: IdentityVerifier, policy: ServerPolicy):
        """Test that undecodable base64 is malformed."""
        with pytest.raises(MalformedCredentialError):
            verifier.verify("Nostr !!!not-base64!!!", policy)

    def test_invalid_json(self, verifier: IdentityVerifier, policy: ServerPolicy):
        """Test that non-JSON content is malformed."""
        payload = base64.b64encode(b"{not json").decode()
        with pytest.raises(MalformedCredentialError):
            verifier.verify(f"Nostr {payload}", policy)

    def test_json_array_rejected(self, verifier: IdentityVerifier, policy: ServerPolicy):
        """Test that a JSON value other than an object is malformed."""
        payload = base64.b64encode(b"[24242]").decode()
        with pytest.raises(MalformedCredentialError):
            verifier.verify(f"Nostr {payload}", policy)

    def test_urlsafe_base64_accepted(
        self, verifier: IdentityVerifier, policy: ServerPolicy, make_auth
    ):
        """Test that URL-safe base64 without padding decodes."""
        standard = make_auth().split(" ", 1)[1]
        urlsafe = standard.replace("+", "-").replace("/", "_").rstrip("=")
        identity = verifier.verify(f"Nostr {urlsafe}", policy)
        assert identity.pubkey == OWNER

    def test_non_numeric_created_at(
        self, verifier: IdentityVerifier, policy: ServerPolicy, make_auth
    ):
        """Test that a string timestamp is malformed."""
        with pytest.raises(MalformedCredentialError):
            verifier.verify(make_auth(created_at="yesterday"), policy)


class TestCredentialStructure:
    """Tests for kind and required fields."""

    def test_wrong_kind(self, verifier: IdentityVerifier, policy: ServerPolicy, make_auth):
        """Test that a kind other than 24242 is rejected."""
        with pytest.raises(WrongCredentialKindError):
            verifier.verify(make_auth(kind=1), policy)

    def test_kind_as_string_rejected(
        self, verifier: IdentityVerifier, policy: ServerPolicy, make_auth
    ):
        """Test that the kind must be numeric."""
        with pytest.raises(WrongCredentialKindError):
            verifier.verify(make_auth(kind="24242"), policy)

    @pytest.mark.parametrize("field", ["pubkey", "sig", "created_at"])
    def test_missing_required_field(
        self, verifier: IdentityVerifier, policy: ServerPolicy, make_auth, field: str
    ):
        """Test that each required field must be present."""
        with pytest.raises(IncompleteCredentialError):
            verifier.verify(make_auth(**{field: None}), policy)

    def test_empty_signature(self, verifier: IdentityVerifier, policy: ServerPolicy, make_auth):
        """Test that an empty signature is incomplete."""
        with pytest.raises(IncompleteCredentialError):
            verifier.verify(make_auth(sig=""), policy)

    def test_valid_event(self, verifier: IdentityVerifier, policy: ServerPolicy, make_auth):
        """Test that a well-formed fresh event is accepted."""
        identity = verifier.verify(make_auth(), policy)

        assert identity.pubkey == OWNER
        assert identity.event is not None
        assert identity.event.tags == (("t", "upload"),)
        assert identity.event.action == "upload"

    @pytest.mark.parametrize("tags", [5, "upload", {"t": "upload"}, [5], [["t", "upload"], "x"]])
    def test_malformed_tags(
        self, verifier: IdentityVerifier, policy: ServerPolicy, make_auth, tags
    ):
        """Test that tags must be a list of lists."""
        with pytest.raises(MalformedCredentialError):
            verifier.verify(make_auth(tags=tags), policy)

    def test_missing_tags_accepted(
        self, verifier: IdentityVerifier, policy: ServerPolicy, make_auth
    ):
        """Test that an event without tags has no action."""
        identity = verifier.verify(make_auth(tags=None), policy)

        assert identity.event is not None
        assert identity.event.tags == ()
        assert identity.event.action is None


class TestAllowList:
    """Tests for the pubkey allow-list."""

    def test_listed_pubkey_accepted(self, verifier: IdentityVerifier, make_auth):
        """Test that a listed pubkey passes."""
        policy = ServerPolicy(allowed_pubkeys=frozenset({OWNER}))
        assert verifier.verify(make_auth(), policy).pubkey == OWNER

    def test_unlisted_pubkey_rejected(self, verifier: IdentityVerifier, make_auth):
        """Test that an unlisted pubkey fails even with a valid event."""
        policy = ServerPolicy(allowed_pubkeys=frozenset({OWNER}))
        with pytest.raises(IdentityNotAuthorizedError):
            verifier.verify(make_auth(pubkey=OTHER), policy)

    def test_unlisted_pubkey_rejected_when_optional(self, verifier: IdentityVerifier, make_auth):
        """Test that a supplied credential is checked even when optional."""
        policy = ServerPolicy(allowed_pubkeys=frozenset({OWNER}))
        with pytest.raises(IdentityNotAuthorizedError):
            verifier.verify(make_auth(pubkey=OTHER), policy, required=False)


class TestFreshness:
    """Tests for the credential age window."""

    def test_fresh_event(self, verifier: IdentityVerifier, policy: ServerPolicy, make_auth):
        """Test that an event issued now is accepted."""
        assert verifier.verify(make_auth(age_seconds=0), policy).pubkey == OWNER

    def test_299_seconds_old(self, verifier: IdentityVerifier, policy: ServerPolicy, make_auth):
        """Test that an event 299 seconds old is accepted."""
        assert verifier.verify(make_auth(age_seconds=299), policy).pubkey == OWNER

    def test_300_seconds_old(self, verifier: IdentityVerifier, policy: ServerPolicy, make_auth):
        """Test that exactly 300 seconds is still accepted."""
        assert verifier.verify(make_auth(age_seconds=300), policy).pubkey == OWNER

    def test_301_seconds_old(self, verifier: IdentityVerifier, policy: ServerPolicy, make_auth):
        """Test that an event 301 seconds old is expired."""
        with pytest.raises(CredentialExpiredError):
            verifier.verify(make_auth(age_seconds=301), policy)

    def test_future_event_accepted(
        self, verifier: IdentityVerifier, policy: ServerPolicy, make_auth
    ):
        """Test that future timestamps are not bounded."""
        assert verifier.verify(make_auth(age_seconds=-3600), policy).pubkey == OWNER

    def test_custom_max_age(self, verifier: IdentityVerifier, make_auth):
        """Test that the age limit comes from the policy."""
        policy = ServerPolicy(auth_max_age_seconds=10)
        with pytest.raises(CredentialExpiredError):
            verifier.verify(make_auth(age_seconds=11), policy)


class RejectingSignatureVerifier:
    def __init__(self) -> None:
        self.seen: list[AuthorizationEvent] = []

    def verify(self, event: AuthorizationEvent) -> None:
        self.seen.append(event)
        raise InvalidSignatureError("Invalid signature")


class TestSignatureVerifier:
    """Tests for the pluggable signature check."""

    def test_noop_is_default(self, verifier: IdentityVerifier):
        """Test that the default verifier is the no-op one."""
        assert isinstance(verifier.signature_verifier, NoopSignatureVerifier)
        assert isinstance(verifier.signature_verifier, SignatureVerifier)

    def test_custom_verifier_rejects(
        self, clock: FakeClock, policy: ServerPolicy, make_auth
    ):
        """Test that a plugged-in verifier can reject the event."""
        rejecting = RejectingSignatureVerifier()
        verifier = IdentityVerifier(rejecting, clock=clock)

        with pytest.raises(AuthenticationError):
            verifier.verify(make_auth(), policy)
        assert rejecting.seen[0].pubkey == OWNER

    def test_custom_verifier_not_called_on_structural_failure(
        self, clock: FakeClock, policy: ServerPolicy, make_auth
    ):
        """Test that structural checks run before the signature check."""
        rejecting = RejectingSignatureVerifier()
        verifier = IdentityVerifier(rejecting, clock=clock)

        with pytest.raises(CredentialExpiredError):
            verifier.verify(make_auth(age_seconds=1000), policy)
        assert rejecting.seen == []

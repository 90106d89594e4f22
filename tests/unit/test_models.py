"""Tests for request models, identifier validation and settings."""

import pytest
from pydantic import ValidationError

from vote_recorder.config import Settings
from vote_recorder.models import VoteRequest, receipt_id, validate_document_id


class TestValidateDocumentId:

    @pytest.mark.parametrize("value", ["paris", "u1", "New York", "東京", "a" * 1500])
    def test_accepts_legal_ids(self, value):
        assert validate_document_id(value) == value

    @pytest.mark.parametrize("value", ["", "   ", "\t"])
    def test_rejects_blank_ids(self, value):
        with pytest.raises(ValueError, match="Missing destinationId or voterId"):
            validate_document_id(value)

    @pytest.mark.parametrize("value", ["a/b", ".", "..", "__id__"])
    def test_rejects_illegal_ids(self, value):
        with pytest.raises(ValueError, match="Invalid destinationId or voterId"):
            validate_document_id(value)

    def test_rejects_oversized_ids(self):
        with pytest.raises(ValueError, match="too long"):
            validate_document_id("é" * 751)


class TestVoteRequest:

    def test_valid_request(self):
        vote = VoteRequest(destinationId="paris", voterId="u1")

        assert vote.destinationId == "paris"
        assert vote.voterId == "u1"

    def test_identifiers_are_not_rewritten(self):
        vote = VoteRequest(destinationId=" paris ", voterId="u1")

        assert vote.destinationId == " paris "

    def test_missing_field(self):
        with pytest.raises(ValidationError):
            VoteRequest(destinationId="paris")

    def test_non_string_identifier(self):
        with pytest.raises(ValidationError):
            VoteRequest(destinationId=42, voterId="u1")


class TestReceiptId:

    def test_plain_ids_are_joined_unchanged(self):
        assert receipt_id("u1", "paris") == "u1_paris"

    def test_underscores_cannot_shift_the_separator(self):
        assert receipt_id("a_b", "c") != receipt_id("a", "b_c")
        assert receipt_id("a_b", "c") == "a%5Fb_c"
        assert receipt_id("a", "b_c") == "a_b%5Fc"

    def test_percent_signs_are_escaped(self):
        assert receipt_id("a%5Fb", "c") == "a%255Fb_c"
        assert receipt_id("a%5Fb", "c") != receipt_id("a_b", "c")

    def test_reserved_pattern_never_produced(self):
        assert receipt_id("__x", "y__") == "%5F%5Fx_y%5F%5F"


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.RECEIPT_COLLECTION == "userVotes"
        assert settings.MAX_TRANSACTION_ATTEMPTS == 5
        assert settings.API_VERSION == "v1"

    def test_private_key_newlines_are_restored(self):
        settings = Settings(_env_file=None, FIREBASE_PRIVATE_KEY="line1\\nline2\\n")

        assert settings.firebase_private_key == "line1\nline2\n"

    def test_missing_private_key_is_empty(self):
        settings = Settings(_env_file=None, FIREBASE_PRIVATE_KEY=None)

        assert settings.firebase_private_key == ""

    def test_service_account_info(self):
        settings = Settings(
            _env_file=None,
            FIREBASE_PROJECT_ID="demo-project",
            FIREBASE_PRIVATE_KEY="key\\n",
            FIREBASE_CLIENT_EMAIL="recorder@demo-project.iam.gserviceaccount.com"
        )

        info = settings.service_account_info

        assert info["type"] == "service_account"
        assert info["project_id"] == "demo-project"
        assert info["private_key"] == "key\n"
        assert info["client_email"] == "recorder@demo-project.iam.gserviceaccount.com"
        assert info["token_uri"] == "https://oauth2.googleapis.com/token"

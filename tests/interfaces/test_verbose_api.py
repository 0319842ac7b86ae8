"""
Unit tests for verbose logging functionality in the FetchEngine API.
"""

import logging
from unittest.mock import patch

import pytest

from hubfetch.interfaces.api import FetchEngine, create_engine
from hubfetch.infrastructure.logger import logger


@pytest.fixture
def engine_parts(http_client, cache, config):
    return http_client, cache, config


class TestVerboseLogging:
    """Test cases for verbose logging functionality."""

    def test_default_initialization(self, engine_parts):
        """Test that FetchEngine initializes with verbose=False by default."""
        engine = FetchEngine(*engine_parts)
        assert engine.verbose is False

    def test_verbose_initialization(self, engine_parts):
        """Test that FetchEngine can be initialized with verbose=True."""
        engine = FetchEngine(*engine_parts, verbose=True)
        assert engine.verbose is True

    def test_create_engine_with_token_and_verbose(self):
        """Test that verbose mode works together with an access token."""
        engine = create_engine(token="hf_test", verbose=True)
        assert engine.verbose is True
        assert engine.http_client.has_auth_token

    @patch('hubfetch.interfaces.api.logger')
    def test_logger_level_verbose_true(self, mock_logger, engine_parts):
        """Test that logger level is set to DEBUG when verbose=True."""
        FetchEngine(*engine_parts, verbose=True)
        mock_logger.setLevel.assert_called_with(logging.DEBUG)

    @patch('hubfetch.interfaces.api.logger')
    def test_logger_level_verbose_false(self, mock_logger, engine_parts):
        """Test that logger level is set to INFO when verbose=False."""
        FetchEngine(*engine_parts, verbose=False)
        mock_logger.setLevel.assert_called_with(logging.INFO)

    @patch('hubfetch.interfaces.api.logger')
    def test_set_verbose_method_enable(self, mock_logger, engine_parts):
        """Test the set_verbose method when enabling verbose mode."""
        engine = FetchEngine(*engine_parts, verbose=False)
        engine.set_verbose(True)

        assert engine.verbose is True
        # Should be called twice: once in __init__, once in set_verbose
        assert mock_logger.setLevel.call_count >= 2
        mock_logger.setLevel.assert_called_with(logging.DEBUG)

    @patch('hubfetch.interfaces.api.logger')
    def test_set_verbose_method_disable(self, mock_logger, engine_parts):
        """Test the set_verbose method when disabling verbose mode."""
        engine = FetchEngine(*engine_parts, verbose=True)
        engine.set_verbose(False)

        assert engine.verbose is False
        assert mock_logger.setLevel.call_count >= 2
        mock_logger.setLevel.assert_called_with(logging.INFO)

    def test_verbose_mode_toggle(self, engine_parts):
        """Test toggling verbose mode multiple times."""
        engine = FetchEngine(*engine_parts)

        engine.set_verbose(True)
        assert engine.verbose is True
        assert logger.level == logging.DEBUG

        engine.set_verbose(False)
        assert engine.verbose is False
        assert logger.level == logging.INFO

    @patch('hubfetch.interfaces.api.logger')
    def test_verbose_debug_message(self, mock_logger, engine_parts):
        """Test that a debug message is logged when verbose mode is enabled."""
        FetchEngine(*engine_parts, verbose=True)
        mock_logger.debug.assert_called_with("Verbose logging enabled")

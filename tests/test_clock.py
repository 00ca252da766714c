"""Tests for the injectable clock."""

from datetime import datetime

import pytest

from bookingcore.shared.clock import Clock, SystemClock, get_clock


class TestClock:
    def test_base_clock_cannot_be_instantiated(self):
        with pytest.raises(TypeError):
            Clock()

    def test_subclass_must_implement_now(self):
        class Broken(Clock):
            pass

        with pytest.raises(TypeError):
            Broken()

    def test_system_clock_is_naive_utc(self):
        now = SystemClock().now()
        assert isinstance(now, datetime)
        assert now.tzinfo is None

    def test_default_dependency(self):
        assert isinstance(get_clock(), SystemClock)

"""Unit tests for the availability probe."""

from unittest.mock import Mock, patch

from retrosync.availability import AvailabilityProbe


class TestAvailabilityProbe:
    """Tests for AvailabilityProbe."""

    @patch("retrosync.availability.socket.create_connection")
    def test_is_available(self, mock_connect):
        """Test a successful connection."""
        probe = AvailabilityProbe("appletv", 80, timeout=2)

        assert probe.is_available()
        mock_connect.assert_called_once_with(("appletv", 80), timeout=2)
        mock_connect.return_value.close.assert_called_once()

    @patch("retrosync.availability.socket.create_connection")
    def test_refused(self, mock_connect):
        """Test a refused connection."""
        mock_connect.side_effect = ConnectionRefusedError()

        assert not AvailabilityProbe("appletv", 80).is_available()

    @patch("retrosync.availability.socket.create_connection")
    def test_wait_blocks_until_open(self, mock_connect):
        """Test that wait polls at the configured interval."""
        mock_connect.side_effect = [OSError("down"), TimeoutError(), Mock()]
        sleep = Mock()
        probe = AvailabilityProbe("appletv", 80, interval=5, sleep=sleep)

        assert probe.wait()
        assert mock_connect.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [5, 5]

    @patch("retrosync.availability.socket.create_connection")
    def test_wait_gives_up(self, mock_connect):
        """Test that max_attempts bounds the wait."""
        mock_connect.side_effect = OSError("down")
        sleep = Mock()
        probe = AvailabilityProbe("appletv", 80, sleep=sleep)

        assert not probe.wait(max_attempts=3)
        assert mock_connect.call_count == 3
        assert sleep.call_count == 2

    @patch("retrosync.availability.socket.create_connection")
    def test_wait_returns_immediately_when_open(self, mock_connect):
        """Test that no sleep happens when the host is up."""
        sleep = Mock()

        assert AvailabilityProbe("appletv", 80, sleep=sleep).wait()
        sleep.assert_not_called()

"""
Tests for usb_formatter.storage.partition module.

Covers the parted command sequence, MBR/GPT selection, and the bounded
partition node poll with its rescan callback. No test sleeps: polling uses
injected exists/sleep functions.
"""

from unittest.mock import Mock, call, patch

import pytest

from usb_formatter.domain import PartitionSpec, TableKind
from usb_formatter.storage import partition
from usb_formatter.storage.exceptions import PartitionTableError


# ==============================================================================
# Polling Tests
# ==============================================================================


class TestWaitForPath:
    """Tests for wait_for_path()."""

    def test_present_immediately(self):
        sleep = Mock()
        retry = Mock()

        assert partition.wait_for_path(
            "/dev/sdb1", exists=lambda path: True, sleep=sleep, on_retry=retry
        )
        sleep.assert_not_called()
        retry.assert_not_called()

    def test_appears_after_retries(self):
        checks = iter([False, False, True])
        sleep = Mock()
        retry = Mock()

        found = partition.wait_for_path(
            "/dev/sdb1",
            max_attempts=5,
            interval=0.3,
            on_retry=retry,
            exists=lambda path: next(checks),
            sleep=sleep,
        )

        assert found is True
        assert retry.call_args_list == [call(1), call(2)]
        assert sleep.call_args_list == [call(0.3), call(0.3)]

    def test_gives_up_after_max_attempts(self):
        exists = Mock(return_value=False)
        sleep = Mock()
        retry = Mock()

        found = partition.wait_for_path(
            "/dev/sdb1",
            max_attempts=4,
            on_retry=retry,
            exists=exists,
            sleep=sleep,
        )

        assert found is False
        assert exists.call_count == 4
        # No retry or sleep after the final check
        assert retry.call_count == 3
        assert sleep.call_count == 3

    def test_default_attempt_count(self):
        exists = Mock(return_value=False)

        partition.wait_for_path("/dev/sdb1", exists=exists, sleep=Mock())

        assert exists.call_count == 15


class TestMakeRescan:
    """Tests for the retry callback used while polling."""

    @patch("usb_formatter.storage.partition.settle")
    @patch("usb_formatter.storage.partition.reread_partition_table")
    def test_rereads_every_nth_attempt(self, mock_reread, mock_settle):
        rescan = partition.make_rescan("/dev/sdb", rescan_every=5)

        for attempt in range(1, 11):
            rescan(attempt)

        assert mock_reread.call_args_list == [call("/dev/sdb"), call("/dev/sdb")]
        assert mock_settle.call_count == 8

    @patch("usb_formatter.storage.partition.settle")
    @patch("usb_formatter.storage.partition.reread_partition_table")
    def test_zero_disables_reread(self, mock_reread, mock_settle):
        rescan = partition.make_rescan("/dev/sdb", rescan_every=0)

        for attempt in range(1, 6):
            rescan(attempt)

        mock_reread.assert_not_called()
        assert mock_settle.call_count == 5


class TestBestEffortCommands:
    """Tests for commands whose failure is ignored."""

    @patch("usb_formatter.storage.partition.run_command")
    @patch("usb_formatter.storage.partition.shutil.which", return_value=None)
    def test_missing_tool_skipped(self, mock_which, mock_run):
        partition.reread_partition_table("/dev/sdb")
        mock_run.assert_not_called()

    @patch("usb_formatter.storage.partition.run_command")
    @patch("usb_formatter.storage.partition.shutil.which", return_value="/usr/bin/x")
    def test_reread_sequence(self, mock_which, mock_run):
        partition.reread_partition_table("/dev/sdb")

        commands = [c.args[0] for c in mock_run.call_args_list]
        assert commands == [
            ["partprobe", "/dev/sdb"],
            ["blockdev", "--rereadpt", "/dev/sdb"],
            ["udevadm", "settle", "--timeout=5"],
        ]

    @patch("usb_formatter.storage.partition.run_command")
    @patch("usb_formatter.storage.partition.shutil.which", return_value="/usr/bin/x")
    def test_errors_suppressed(self, mock_which, mock_run):
        mock_run.side_effect = OSError("device busy")

        partition.wipe_signatures("/dev/sdb")

        mock_run.assert_called_once_with(
            ["wipefs", "-a", "/dev/sdb"], check=False, log_output=False
        )


# ==============================================================================
# parted Tests
# ==============================================================================


class TestCreatePartitionTable:
    """Tests for create_partition_table()."""

    @patch("usb_formatter.storage.partition.run_command")
    def test_mbr_commands(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="", stderr="")
        spec = PartitionSpec("/dev/sdb", TableKind.MBR, "/dev/sdb1")

        partition.create_partition_table(spec)

        assert mock_run.call_args_list == [
            call(["parted", "-s", "/dev/sdb", "mklabel", "msdos"], check=False),
            call(
                [
                    "parted",
                    "-s",
                    "-a",
                    "optimal",
                    "/dev/sdb",
                    "mkpart",
                    "primary",
                    "fat32",
                    "0%",
                    "100%",
                ],
                check=False,
            ),
        ]

    @patch("usb_formatter.storage.partition.run_command")
    def test_gpt_label(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="", stderr="")
        spec = PartitionSpec("/dev/sdc", TableKind.GPT, "/dev/sdc1")

        partition.create_partition_table(spec)

        assert mock_run.call_args_list[0].args[0][-1] == "gpt"

    @patch("usb_formatter.storage.partition.run_command")
    def test_mklabel_failure_stops(self, mock_run):
        mock_run.return_value = Mock(
            returncode=1, stdout="", stderr="Error: Partition(s) on /dev/sdb are being used."
        )
        spec = PartitionSpec("/dev/sdb", TableKind.MBR, "/dev/sdb1")

        with pytest.raises(PartitionTableError) as exc_info:
            partition.create_partition_table(spec)

        assert exc_info.value.step == "create partition table"
        assert "being used" in exc_info.value.detail
        assert mock_run.call_count == 1

    @patch("usb_formatter.storage.partition.run_command")
    def test_mkpart_failure(self, mock_run):
        mock_run.side_effect = [
            Mock(returncode=0, stdout="", stderr=""),
            Mock(returncode=1, stdout="", stderr=""),
        ]
        spec = PartitionSpec("/dev/sdb", TableKind.MBR, "/dev/sdb1")

        with pytest.raises(PartitionTableError) as exc_info:
            partition.create_partition_table(spec)

        assert exc_info.value.step == "create partition"
        assert exc_info.value.detail == "no error message"

    @patch("usb_formatter.storage.partition.run_command")
    def test_parted_missing(self, mock_run):
        mock_run.side_effect = FileNotFoundError("parted")
        spec = PartitionSpec("/dev/sdb", TableKind.MBR, "/dev/sdb1")

        with pytest.raises(PartitionTableError):
            partition.create_partition_table(spec)


# ==============================================================================
# partition_device Tests
# ==============================================================================


class TestPartitionDevice:
    """Tests for the partition_device() entry point."""

    @patch("usb_formatter.storage.partition.wait_for_path", return_value=True)
    @patch("usb_formatter.storage.partition.reread_partition_table")
    @patch("usb_formatter.storage.partition._run_best_effort")
    @patch("usb_formatter.storage.partition.create_partition_table")
    def test_usb_stick_gets_mbr(
        self, mock_create, mock_best_effort, mock_reread, mock_wait
    ):
        spec, confirmed = partition.partition_device("/dev/sdb", 8_000_000_000)

        assert spec == PartitionSpec("/dev/sdb", TableKind.MBR, "/dev/sdb1")
        assert confirmed is True
        mock_create.assert_called_once_with(spec)
        mock_reread.assert_called_once_with("/dev/sdb")
        assert mock_wait.call_args.args[0] == "/dev/sdb1"
        assert mock_best_effort.call_args_list == [
            call(["wipefs", "-a", "/dev/sdb"]),
            call(["sync"]),
        ]

    @patch("usb_formatter.storage.partition.wait_for_path", return_value=False)
    @patch("usb_formatter.storage.partition.reread_partition_table")
    @patch("usb_formatter.storage.partition._run_best_effort")
    @patch("usb_formatter.storage.partition.create_partition_table")
    def test_node_not_confirmed_is_reported(
        self, mock_create, mock_best_effort, mock_reread, mock_wait
    ):
        spec, confirmed = partition.partition_device(
            "/dev/nvme0n1", 4 * 1024**4, max_attempts=3, interval=0.0
        )

        assert spec.table_kind is TableKind.GPT
        assert spec.partition_path == "/dev/nvme0n1p1"
        assert confirmed is False
        assert mock_wait.call_args.kwargs["max_attempts"] == 3
        assert mock_wait.call_args.kwargs["interval"] == 0.0

    @patch("usb_formatter.storage.partition.wait_for_path")
    @patch("usb_formatter.storage.partition._run_best_effort")
    @patch("usb_formatter.storage.partition.create_partition_table")
    def test_parted_failure_skips_poll(self, mock_create, mock_best_effort, mock_wait):
        mock_create.side_effect = PartitionTableError("/dev/sdb", "create partition")

        with pytest.raises(PartitionTableError):
            partition.partition_device("/dev/sdb", 8_000_000_000)

        mock_wait.assert_not_called()

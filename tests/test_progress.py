"""
Tests for progress reporting.
"""

from unittest.mock import MagicMock, patch

from wbgrid.progress import ProgressReporter


class TestProgressReporter:
    def test_disabled_counts_steps(self):
        reporter = ProgressReporter(total=10, desc="Test", disable=True)

        for _ in range(10):
            reporter.update(1)
        reporter.close()

        assert reporter.current == 10

    def test_update_increments(self):
        reporter = ProgressReporter(total=100, disable=True)
        reporter.update(5)
        reporter.update(10)
        assert reporter.current == 15

    def test_callback_replaces_bar(self):
        calls = []
        with patch("wbgrid.progress.tqdm") as mock_tqdm:
            reporter = ProgressReporter(total=3, callback=lambda cur, tot: calls.append((cur, tot)))
            reporter.update()
            reporter.update(2)

        mock_tqdm.assert_not_called()
        assert calls == [(1, 3), (3, 3)]

    def test_disabled_ignores_callback(self):
        callback = MagicMock()
        reporter = ProgressReporter(total=3, callback=callback, disable=True)
        reporter.update()
        callback.assert_not_called()

    def test_bar_created_and_closed(self):
        with patch("wbgrid.progress.tqdm") as mock_tqdm:
            bar = mock_tqdm.return_value
            with ProgressReporter(total=5, desc="runs") as reporter:
                reporter.update(2)
                reporter.set_description("yell/CCSM4/rcp85")

        mock_tqdm.assert_called_once_with(total=5, desc="runs", leave=False)
        bar.update.assert_called_once_with(2)
        bar.set_description.assert_called_once_with("yell/CCSM4/rcp85")
        bar.close.assert_called_once()

    def test_update_after_close_ignored(self):
        reporter = ProgressReporter(total=4, disable=True)
        reporter.update(1)
        reporter.close()
        reporter.update(3)
        reporter.close()
        assert reporter.current == 1

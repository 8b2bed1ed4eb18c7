"""
Tests for the logging wrapper.
"""

import logging

from wbgrid.wb_logging import LogLevel, get_logger, set_global_level


class TestWaterBalanceLogger:
    def test_same_name_same_logger(self):
        assert get_logger("wbgrid.test_a") is get_logger("wbgrid.test_a")

    def test_bind_prefixes_context(self, caplog):
        logger = get_logger("wbgrid.test_bind").bind("yell/CCSM4/rcp85")
        with caplog.at_level(logging.INFO, logger="wbgrid.test_bind"):
            logger.info("Terrain loaded")
        assert "[yell/CCSM4/rcp85] Terrain loaded" in caplog.messages

    def test_bind_keeps_parent_unprefixed(self, caplog):
        logger = get_logger("wbgrid.test_parent")
        logger.bind("ctx")
        with caplog.at_level(logging.INFO, logger="wbgrid.test_parent"):
            logger.info("plain")
        assert caplog.messages == ["plain"]

    def test_level_gate(self, caplog):
        logger = get_logger("wbgrid.test_level")
        logger.set_level(LogLevel.WARNING)
        with caplog.at_level(logging.DEBUG, logger="wbgrid.test_level"):
            logger.info("hidden")
            logger.warning("shown")
        assert caplog.messages == ["shown"]
        logger.set_level(LogLevel.INFO)

    def test_set_global_level(self):
        logger = get_logger("wbgrid.test_global")
        set_global_level(LogLevel.ERROR)
        try:
            assert logger.level == LogLevel.ERROR
        finally:
            set_global_level(LogLevel.INFO)

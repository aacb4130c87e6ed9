"""Tests for offerflow.core.pipeline_logger module."""

import logging

from offerflow.core.pipeline_logger import PipelineLogger, format_fields, get_logger, reset_logger


class TestPipelineLogger:

    def test_per_workflow_log_file(self, tmp_path):
        logger = PipelineLogger(name="offerflow.test.file", log_dir=tmp_path)

        logger.start_workflow("wf-1", ["Fetch", "Analyze"])
        logger.start_stage("Analyze", 3, "openrouter/google/gemini-2.5-flash")
        logger.stage_result("Analyze", "Top 3 offers ranked", offers_analyzed=3)
        logger.end_workflow("complete")

        files = list(tmp_path.glob("wf-1_*.log"))
        assert len(files) == 1
        text = files[0].read_text(encoding="utf-8")
        assert "Starting workflow: wf-1 (Fetch -> Analyze)" in text
        assert "ANALYZE (3 offers, gemini-2.5-flash)" in text
        assert "Analyze done: Top 3 offers ranked | offers_analyzed=3" in text
        assert "Workflow wf-1 COMPLETE" in text
        assert logger.log_file is None
        assert not any(isinstance(h, logging.FileHandler) for h in logger.logger.handlers)

    def test_child_loggers_reach_file_tagged_with_workflow(self, tmp_path):
        logger = PipelineLogger(name="offerflow.test.tree", log_dir=tmp_path)
        logger.start_workflow("wf-2")
        logging.getLogger("offerflow.test.tree.agents").warning("model returned unknown ids")
        logger.end_workflow("failed")

        text = next(tmp_path.glob("wf-2_*.log")).read_text(encoding="utf-8")
        assert "wf-2 offerflow.test.tree.agents: model returned unknown ids" in text

    def test_next_workflow_gets_its_own_file(self, tmp_path):
        logger = PipelineLogger(name="offerflow.test.two", log_dir=tmp_path)
        logger.start_workflow("wf-a")
        logger.info("first run")
        logger.start_workflow("wf-b")
        logger.info("second run")
        logger.end_workflow("complete")

        first = next(tmp_path.glob("wf-a_*.log")).read_text(encoding="utf-8")
        second = next(tmp_path.glob("wf-b_*.log")).read_text(encoding="utf-8")
        assert "first run" in first and "second run" not in first
        assert "second run" in second

    def test_usage_block_per_stage(self, caplog):
        logger = PipelineLogger(name="offerflow.test.usage")
        cost = {
            "calls": 3,
            "prompt_tokens": 300,
            "completion_tokens": 90,
            "cost_usd": 0.0021,
            "stages": {
                "analyze": {"calls": 2, "prompt_tokens": 200, "completion_tokens": 60, "cost_usd": 0.0014},
                "organize": {"calls": 1, "prompt_tokens": 100, "completion_tokens": 30, "cost_usd": 0.0007},
            },
        }
        with caplog.at_level(logging.INFO, logger="offerflow.test.usage"):
            logger.start_workflow("wf-u")
            logger.end_workflow("complete", cost=cost)

        assert "Model usage: calls=3, prompt_tokens=300, completion_tokens=90, cost_usd=0.0021" in caplog.text
        assert "  analyze: calls=2" in caplog.text
        assert "  organize: calls=1" in caplog.text

    def test_error_includes_exception(self, caplog):
        logger = PipelineLogger(name="offerflow.test.error")
        logger.error("Workflow wf-3 failed", exc=ValueError("bad input"))
        assert "ERROR: Workflow wf-3 failed | ValueError: bad input" in caplog.text

    def test_verbose_lowers_console_level(self):
        logger = PipelineLogger(name="offerflow.test.verbose")
        logger.set_verbose(True)
        console = [h for h in logger.logger.handlers if h.name == "offerflow-console"]
        assert len(console) == 1
        assert console[0].level == logging.DEBUG

    def test_console_handler_not_duplicated(self):
        PipelineLogger(name="offerflow.test.dup")
        logger = PipelineLogger(name="offerflow.test.dup")
        assert [h.name for h in logger.logger.handlers] == ["offerflow-console"]


class TestFormatFields:

    def test_truncates_long_values(self):
        rendered = format_fields({"note": "x" * 80, "ids": list(range(10)), "n": 1})
        assert "note=" + "x" * 47 + "..." in rendered
        assert "ids=[10 items]" in rendered
        assert rendered.endswith("n=1")

    def test_floats_compact(self):
        assert format_fields({"cost_usd": 0.00123456789}) == "cost_usd=0.00123457"


class TestGlobalLogger:

    def test_shared_and_widened(self, tmp_path):
        first = get_logger()
        assert get_logger(verbose=True, log_dir=tmp_path) is first
        assert first.verbose is True
        assert first.log_dir == tmp_path

    def test_reset_closes_open_file(self, tmp_path):
        logger = get_logger(log_dir=tmp_path)
        logger.start_workflow("wf-r")
        reset_logger()
        assert not any(isinstance(h, logging.FileHandler) for h in logger.logger.handlers)
        assert get_logger() is not logger

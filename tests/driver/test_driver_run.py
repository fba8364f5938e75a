"""Tests for the remote-side driver entry point."""

import base64
import io
from unittest.mock import MagicMock, patch

from glare_engine.driver.run import emit_result, main, run_driver
from glare_engine.models import ExtractionError


def test_emit_result_format():
    stream = io.StringIO()

    emit_result(b"\xff\xd8image", stream)

    lines = stream.getvalue().splitlines()
    payload = [line for line in lines if line.startswith("BASE64_RESULT:")]
    assert len(payload) == 1
    assert base64.b64decode(payload[0][len("BASE64_RESULT:") :]) == b"\xff\xd8image"
    assert lines[-1] == "SUCCESS"


class TestRunDriver:
    @patch("glare_engine.driver.run.sync_playwright")
    def test_missing_input_fails_before_browser(self, mock_pw, tmp_path, capsys):
        stream = io.StringIO()

        rc = run_driver(
            False, input_dir=tmp_path / "in", output_dir=tmp_path / "out", stream=stream
        )

        assert rc == 1
        mock_pw.assert_not_called()
        assert "BASE64_RESULT:" not in stream.getvalue()
        assert "FAILED: input:" in capsys.readouterr().err

    @patch("glare_engine.driver.run.GeminiImageSession")
    @patch("glare_engine.driver.run.launch_context")
    @patch("glare_engine.driver.run.sync_playwright")
    def test_success_emits_payload_and_closes_browser(
        self, mock_pw, mock_launch, mock_session, tmp_path
    ):
        (tmp_path / "glare.jpg").write_bytes(b"g")
        context = MagicMock()
        mock_launch.return_value = context
        mock_session.return_value.run.return_value = b"result-bytes"
        stream = io.StringIO()

        rc = run_driver(True, input_dir=tmp_path, output_dir=tmp_path / "out", stream=stream)

        assert rc == 0
        assert f"BASE64_RESULT:{base64.b64encode(b'result-bytes').decode()}" in stream.getvalue()
        page = context.new_page.return_value
        page.close.assert_called_once()
        context.close.assert_called_once()
        args = mock_session.call_args.args
        assert args[0] is page
        assert args[2] == tmp_path / "out" / "gemini_result.jpg"
        assert not args[1].with_reference

    @patch("glare_engine.driver.run.GeminiImageSession")
    @patch("glare_engine.driver.run.launch_context")
    @patch("glare_engine.driver.run.sync_playwright")
    def test_session_failure_exits_nonzero(
        self, mock_pw, mock_launch, mock_session, tmp_path, capsys
    ):
        (tmp_path / "glare.jpg").write_bytes(b"g")
        context = MagicMock()
        mock_launch.return_value = context
        mock_session.return_value.run.side_effect = ExtractionError(
            "Could not download generated image"
        )
        stream = io.StringIO()

        rc = run_driver(False, input_dir=tmp_path, output_dir=tmp_path / "out", stream=stream)

        assert rc == 1
        assert stream.getvalue() == ""
        context.close.assert_called_once()
        assert "FAILED: extraction: Could not download generated image" in capsys.readouterr().err

    @patch("glare_engine.driver.run.GeminiImageSession")
    @patch("glare_engine.driver.run.launch_context")
    @patch("glare_engine.driver.run.sync_playwright")
    def test_close_errors_do_not_mask_result(self, mock_pw, mock_launch, mock_session, tmp_path):
        (tmp_path / "glare.jpg").write_bytes(b"g")
        context = MagicMock()
        context.close.side_effect = RuntimeError("already closed")
        mock_launch.return_value = context
        mock_session.return_value.run.return_value = b"ok"

        rc = run_driver(
            False, input_dir=tmp_path, output_dir=tmp_path / "out", stream=io.StringIO()
        )

        assert rc == 0


@patch("glare_engine.driver.run.run_driver", return_value=0)
def test_main_passes_reference_flag(mock_run):
    assert main(["--with-reference"]) == 0
    mock_run.assert_called_once_with(with_reference=True)

    mock_run.reset_mock()
    main([])
    mock_run.assert_called_once_with(with_reference=False)

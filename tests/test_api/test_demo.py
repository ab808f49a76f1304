"""
Tests for the in-process demo flows.
"""

from api.demo import run_cod_demo, run_prepaid_demo


class TestDemos:
    """The demos run end to end and leave nothing on disk."""

    def test_cod_demo(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)

        run_cod_demo()

        out = capsys.readouterr().out
        assert "COD order placed successfully" in out
        assert "[admin]" in out
        assert list(tmp_path.iterdir()) == []

    def test_prepaid_demo(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)

        run_prepaid_demo()

        out = capsys.readouterr().out
        assert "Orders stored so far: 0" in out
        assert "Payment verified and order saved successfully" in out
        assert not (tmp_path / "chat-session").exists()

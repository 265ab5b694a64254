"""Test the command-line interface"""

import json
import wave

import pytest
from click.testing import CliRunner

from medialib import __version__
from medialib.cli import cli


def write_wav(path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with wave.open(str(path), "wb") as w:
        w.setnchannels(1)
        w.setsampwidth(2)
        w.setframerate(8000)
        w.writeframes(b"\x00\x00" * 800)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(temp_dir):
    path = temp_dir / "config.yaml"
    path.write_text(
        "library:\n"
        f"  database: {json.dumps(str(temp_dir / 'data' / 'library.db'))}\n"
        f"  cache_directory: {json.dumps(str(temp_dir / 'data' / 'cache'))}\n"
        "logging:\n"
        f"  directory: {json.dumps(str(temp_dir / 'logs'))}\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def invoke(runner, config_file):
    def run(*args, input=None):
        return runner.invoke(cli, ["--config", str(config_file), *args], input=input)
    return run


@pytest.fixture
def wav_dir(temp_dir):
    root = temp_dir / "Wavs"
    write_wav(root / "Album" / "Singer - First Song.wav")
    write_wav(root / "Album" / "Singer - Second Song.wav")
    return root


def first_fingerprint(output: str) -> str:
    return output.splitlines()[0].split("  ")[0]


class TestCli:
    """Test CLI commands end to end"""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_without_command(self, runner):
        result = runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "add-local" in result.output

    def test_missing_config(self, runner, temp_dir):
        result = runner.invoke(cli, ["--config", str(temp_dir / "nope.yaml"), "folders"])
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_add_local_and_search(self, invoke, wav_dir):
        result = invoke("add-local", str(wav_dir), "--name", "Wavs")
        assert result.exit_code == 0, result.output
        assert "Added Wavs" in result.output

        result = invoke("search", "second")
        assert result.exit_code == 0
        assert "Second Song - Singer" in result.output
        assert "1 tracks" in result.output

    def test_folders(self, invoke, wav_dir):
        assert "No folders registered" in invoke("folders").output
        invoke("add-local", str(wav_dir), "--no-sync")
        result = invoke("folders")
        assert "Wavs" in result.output
        assert "last sync never" in result.output

    def test_locate_asks_permission(self, invoke, wav_dir):
        """A new invocation holds no grant and asks before reading"""
        invoke("add-local", str(wav_dir))
        fingerprint = first_fingerprint(invoke("search", "first").output)

        result = invoke("locate", fingerprint, input="y\n")

        assert result.exit_code == 0, result.output
        assert "First Song.wav" in result.output

    def test_locate_refused(self, invoke, wav_dir):
        invoke("add-local", str(wav_dir))
        fingerprint = first_fingerprint(invoke("search", "first").output)

        result = invoke("locate", fingerprint, input="n\n")

        assert result.exit_code == 3
        assert "permission_denied" in result.output

    def test_locate_unknown(self, invoke):
        assert invoke("locate", "nothing-1").exit_code == 4

    def test_remove_unknown_folder(self, invoke):
        result = invoke("remove", "nope", "--yes")
        assert result.exit_code == 4
        assert "No library folder" in result.output

    def test_sync_without_folders(self, invoke):
        assert invoke("sync", "--yes").exit_code == 0

    def test_match(self, invoke, wav_dir, temp_dir):
        invoke("add-local", str(wav_dir))
        lines = temp_dir / "list.txt"
        lines.write_text("First Song - Singer\nMissing - Nobody\n", encoding="utf-8")

        result = invoke("match", str(lines), "--playlist", "Mine")

        assert result.exit_code == 0, result.output
        assert "Created playlist Mine" in result.output
        assert "1 matched, 1 unmatched" in result.output

    def test_export_import(self, invoke, wav_dir, temp_dir):
        invoke("add-local", str(wav_dir))
        export_path = temp_dir / "export.json"

        result = invoke("export", str(export_path))
        assert result.exit_code == 0, result.output
        assert "Exported 2 tracks" in result.output

        result = invoke("import", str(export_path), "--yes")
        assert result.exit_code == 0, result.output
        assert "medialib reconnect" in result.output

    def test_import_invalid(self, invoke, temp_dir):
        path = temp_dir / "bad.json"
        path.write_text('{"version": 99}', encoding="utf-8")
        result = invoke("import", str(path), "--yes")
        assert result.exit_code == 4
        assert "Unsupported export version" in result.output

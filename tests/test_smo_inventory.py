"""
Tests for SMO version discovery.

Covers GAC folder parsing, PE version reading, local scanning against a fake
system root, remote scanning through a mocked script runner, filtering and
per-computer failure handling.
"""

import struct
from unittest.mock import MagicMock, patch

import pytest

from dbaquery.application.smo_inventory import SmoInventoryService
from dbaquery.domain import RemoteExecutionError, SmoSource, SmoVersion
from dbaquery.infrastructure.psremote import PSRemoteResult, RemoteScriptRunner
from dbaquery.infrastructure.smo import parse_gac_dirname, read_file_version, scan_local
from dbaquery.infrastructure.smo.assemblies import SMO_PUBLIC_KEY_TOKEN


def _fake_dll(product=(16, 100, 4, 2)):
    """Minimal bytes carrying a VS_FIXEDFILEINFO block."""
    major, minor, build, revision = product
    info = struct.pack(
        "<6I",
        0xFEEF04BD,
        0x00010000,
        (major << 16) | minor,
        (build << 16) | revision,
        (major << 16) | minor,
        (build << 16) | revision,
    )
    return b"MZ" + b"\x00" * 126 + info + b"\x00" * 32


def _gac(system_root, *folders, legacy=()):
    modern = system_root / "Microsoft.NET" / "assembly" / "GAC_MSIL" / "Microsoft.SqlServer.Smo"
    old = system_root / "assembly" / "GAC_MSIL" / "Microsoft.SqlServer.Smo"
    for name in folders:
        (modern / name).mkdir(parents=True)
    for name in legacy:
        (old / name).mkdir(parents=True)


class TestGacParsing:
    """Test cases for GAC folder name parsing."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            (f"v4.0_16.100.0.0__{SMO_PUBLIC_KEY_TOKEN}", "16.100.0.0"),
            (f"13.0.0.0__{SMO_PUBLIC_KEY_TOKEN}", "13.0.0.0"),
            ("v4.0_15.0.0.0", "15.0.0.0"),
            ("desktop.ini", None),
            ("", None),
        ],
    )
    def test_parse(self, name, expected):
        assert parse_gac_dirname(name) == expected


class TestReadFileVersion:
    """Test cases for PE version reading."""

    def test_product_version(self, tmp_path):
        dll = tmp_path / "Microsoft.SqlServer.Smo.dll"
        dll.write_bytes(_fake_dll((17, 100, 40, 0)))
        assert read_file_version(dll) == "17.100.40.0"

    def test_no_version_resource(self, tmp_path):
        dll = tmp_path / "plain.dll"
        dll.write_bytes(b"MZ" + b"\x00" * 64)
        assert read_file_version(dll) is None


class TestScanLocal:
    """Test cases for scanning this computer."""

    def test_nothing_installed(self, tmp_path):
        assert scan_local("PC01", tmp_path / "lib", system_root=tmp_path / "win", include_gac=True) == []

    def test_bundled_library(self, tmp_path):
        lib = tmp_path / "lib"
        lib.mkdir()
        (lib / "Microsoft.SqlServer.Smo.dll").write_bytes(_fake_dll())

        records = scan_local("PC01", lib, include_gac=False)

        assert len(records) == 1
        assert records[0].version == "16.100.4.2"
        assert records[0].source is SmoSource.LIBRARY
        assert not records[0].loaded
        assert "Microsoft.SqlServer.Smo" in records[0].load_template

    def test_gac_folders_newest_first(self, tmp_path):
        system_root = tmp_path / "win"
        _gac(
            system_root,
            f"v4.0_13.0.0.0__{SMO_PUBLIC_KEY_TOKEN}",
            f"v4.0_16.100.0.0__{SMO_PUBLIC_KEY_TOKEN}",
            legacy=[f"10.0.0.0__{SMO_PUBLIC_KEY_TOKEN}"],
        )

        records = scan_local("PC01", tmp_path / "lib", system_root=system_root, include_gac=True)

        assert [r.version for r in records] == ["16.100.0.0", "13.0.0.0", "10.0.0.0"]
        assert [r.source for r in records] == [SmoSource.GAC, SmoSource.GAC, SmoSource.GAC_LEGACY]
        assert records[0].load_template == (
            'clr.AddReference("Microsoft.SqlServer.Smo, Version=16.100.0.0, '
            f'Culture=neutral, PublicKeyToken={SMO_PUBLIC_KEY_TOKEN}")'
        )

    def test_loaded_versions_flagged(self, tmp_path):
        system_root = tmp_path / "win"
        _gac(system_root, f"v4.0_16.100.0.0__{SMO_PUBLIC_KEY_TOKEN}", f"v4.0_15.0.0.0__{SMO_PUBLIC_KEY_TOKEN}")

        with patch(
            "dbaquery.infrastructure.smo.assemblies.loaded_smo_assemblies",
            return_value=({"15.0.0.0"}, set()),
        ):
            records = scan_local("PC01", tmp_path / "lib", system_root=system_root, include_gac=True)

        assert {r.version: r.loaded for r in records} == {"16.100.0.0": False, "15.0.0.0": True}


class TestSmoInventoryService:
    """Test cases for SmoInventoryService."""

    def _records(self, computer, *versions):
        return [SmoVersion(computer_name=computer, version=v) for v in versions]

    def test_single_name_accepted(self, settings):
        service = SmoInventoryService(settings)
        with patch("dbaquery.application.smo_inventory.scan_local", return_value=[]) as scan:
            assert service.get_management_object("localhost") == []
        scan.assert_called_once()
        assert scan.call_args.args[1] == settings.library_dir

    def test_version_filter(self, settings):
        service = SmoInventoryService(settings)
        found = self._records("PC01", "13.0.1.0", "14.0.2.0", "130.1.0.0")
        with patch("dbaquery.application.smo_inventory.scan_local", return_value=found):
            records = service.get_management_object(["localhost"], version="13")
        assert [r.version for r in records] == ["13.0.1.0"]

    def test_remote_computer_uses_runner(self, settings):
        runner = MagicMock()
        runner.run_json.return_value = [
            {"Name": f"v4.0_16.100.0.0__{SMO_PUBLIC_KEY_TOKEN}", "Source": "gac", "Path": "C:\\x"},
            {"Name": f"11.0.0.0__{SMO_PUBLIC_KEY_TOKEN}", "Source": "gac_legacy", "Path": "C:\\y"},
        ]
        factory = MagicMock(return_value=runner)
        service = SmoInventoryService(settings, runner_factory=factory)

        records = service.get_management_object(["SQLREMOTE01"])

        factory.assert_called_once_with("SQLREMOTE01", None)
        runner.close.assert_called_once()
        assert [(r.computer_name, r.version, r.source) for r in records] == [
            ("SQLREMOTE01", "16.100.0.0", SmoSource.GAC),
            ("SQLREMOTE01", "11.0.0.0", SmoSource.GAC_LEGACY),
        ]

    def test_single_remote_object_wrapped(self, settings):
        runner = MagicMock()
        runner.run_json.return_value = {"Name": "v4.0_15.0.0.0__x", "Source": "gac", "Path": ""}
        service = SmoInventoryService(settings, runner_factory=MagicMock(return_value=runner))
        assert [r.version for r in service.get_management_object("SQLREMOTE01")] == ["15.0.0.0"]

    def test_failing_computer_skipped(self, settings):
        good = MagicMock()
        good.run_json.return_value = [{"Name": "v4.0_16.0.0.0__x", "Source": "gac", "Path": ""}]
        bad = MagicMock()
        bad.run_json.side_effect = RemoteExecutionError("WinRM unreachable", target="BAD01")

        def factory(host, credential):
            return bad if host == "BAD01" else good

        service = SmoInventoryService(settings, runner_factory=factory)
        records = service.get_management_object(["BAD01", "GOOD01"])

        assert [r.computer_name for r in records] == ["GOOD01"]
        bad.close.assert_called_once()

    def test_failure_raised_with_enable_exception(self, settings):
        bad = MagicMock()
        bad.run_json.side_effect = RemoteExecutionError("WinRM unreachable", target="BAD01")
        service = SmoInventoryService(settings, runner_factory=MagicMock(return_value=bad))
        with pytest.raises(RemoteExecutionError):
            service.get_management_object(["BAD01", "GOOD01"], enable_exception=True)

    def test_os_error_wrapped_with_enable_exception(self, settings):
        service = SmoInventoryService(settings)
        with patch("dbaquery.application.smo_inventory.scan_local", side_effect=PermissionError("denied")):
            with pytest.raises(RemoteExecutionError, match="denied"):
                service.get_management_object("localhost", enable_exception=True)

    def test_malformed_remote_output(self, settings):
        runner = MagicMock()
        runner.run_json.return_value = [{"Unexpected": 1}]
        service = SmoInventoryService(settings, runner_factory=MagicMock(return_value=runner))
        assert service.get_management_object("SQLREMOTE01") == []
        with pytest.raises(RemoteExecutionError, match="Unexpected SMO scan output"):
            service.get_management_object("SQLREMOTE01", enable_exception=True)


class TestRemoteScriptRunner:
    """Test cases for JSON extraction from script output."""

    def _runner(self, result):
        client = MagicMock()
        client.config.hostname = "SQLREMOTE01"
        client.run_ps.return_value = result
        return RemoteScriptRunner(client)

    def test_json_with_noise(self):
        runner = self._runner(PSRemoteResult(success=True, stdout='WARNING: x\n[{"Name": "a"}]\n'))
        assert runner.run_json("script") == [{"Name": "a"}]

    def test_no_output_is_empty_list(self):
        assert self._runner(PSRemoteResult(success=True, stdout="")).run_json("script") == []

    def test_invalid_json(self):
        runner = self._runner(PSRemoteResult(success=True, stdout="[not json]"))
        with pytest.raises(RemoteExecutionError, match="Failed to parse JSON"):
            runner.run_json("script", "SMO scan")

    def test_script_failure(self):
        runner = self._runner(PSRemoteResult(success=False, stderr="Access denied"))
        with pytest.raises(RemoteExecutionError, match="Access denied"):
            runner.run_json("script", "SMO scan")

#!/usr/bin/env python3
"""
Tests for the atlasdex-migrate command line entry point
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from atlasdex_migrations.deploy import main
from atlasdex_migrations.records import recorded_proxy

IMPLEMENTATION = "0x" + "1" * 40
SETUP = "0x" + "2" * 40
PROXY = "0x" + "3" * 40
NEW_IMPLEMENTATION = "0x" + "5" * 40


def local_entry(**overrides):
    entry = {
        "port": 8545,
        "networkId": "*",
        "nativeWrappedAddress": "0x" + "a" * 40,
        "feeCollector": "0x" + "b" * 40,
        "routers": [
            "0x1111111254fb6c44bac0bed2854e76f90643097d",
            "0xdef1c0ded9bec7f1a1670819833240f027b25eff",
        ],
    }
    entry.update(overrides)
    return entry


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ATLASDEX_LOG_FILE", raising=False)
    return tmp_path


def write_table(directory, **entries):
    path = directory / "networks.json"
    path.write_text(json.dumps({"networks": entries}))
    return str(path)


def fake_deployer(addresses):
    deployer = MagicMock()
    deployer.deploy.side_effect = list(addresses)
    deployer.encode_call.return_value = "0xdeadbeef"
    deployer.transact.return_value = {'status': 1, 'transactionHash': b'\x07' * 32}
    return deployer


class TestMain:
    @patch('atlasdex_migrations.deploy.ContractDeployer')
    def test_unconfigured_network(self, mock_deployer, workspace):
        config = write_table(workspace, ethereum=local_entry())

        assert main(["foo", "--config", config]) == 1
        mock_deployer.connect.assert_not_called()

    @patch('atlasdex_migrations.deploy.ContractDeployer')
    def test_dry_run(self, mock_deployer, workspace, capsys):
        config = write_table(workspace, ethereum=local_entry())

        assert main(["ethereum", "--config", config, "--dry-run"]) == 0

        out = capsys.readouterr().out
        assert "1. deploy AtlasDexSwap" in out
        assert "4. deploy AtlasDexProxy" in out
        mock_deployer.connect.assert_not_called()

    @patch('atlasdex_migrations.deploy.ContractDeployer')
    def test_fresh_deployment(self, mock_deployer, workspace, capsys):
        config = write_table(workspace, ethereum=local_entry())
        mock_deployer.connect.return_value = fake_deployer([IMPLEMENTATION, SETUP, PROXY])

        assert main(["ethereum", "--config", config, "--build-dir", "artifacts"]) == 0

        assert mock_deployer.connect.call_args.kwargs['build_dir'] == "artifacts"
        out = capsys.readouterr().out
        assert f"Proxy: {PROXY}" in out
        assert "Deployment complete" in out
        assert recorded_proxy("ethereum", str(workspace / "deployments")) == PROXY

    @patch('atlasdex_migrations.deploy.ContractDeployer')
    def test_upgrade_rerun_uses_recorded_proxy(self, mock_deployer, workspace):
        config = write_table(workspace, ethereum=local_entry())
        mock_deployer.connect.return_value = fake_deployer([IMPLEMENTATION, SETUP, PROXY])
        assert main(["ethereum", "--config", config]) == 0

        config = write_table(workspace, ethereum=local_entry(deployImplementationOnly=True))
        upgrader = fake_deployer([NEW_IMPLEMENTATION])
        mock_deployer.connect.return_value = upgrader

        assert main(["ethereum", "--config", config]) == 0

        upgrader.transact.assert_called_once_with("AtlasDexSwap", PROXY, "upgradeTo", NEW_IMPLEMENTATION)
        with open(workspace / "deployments" / "ethereum.json") as f:
            record = json.load(f)
        assert record['mode'] == "upgrade"
        assert record['implementation'] == NEW_IMPLEMENTATION
        assert record['upgrade_tx'] == "0x" + "07" * 32
        assert record['setup'] == SETUP

    @patch('atlasdex_migrations.deploy.ContractDeployer')
    def test_upgrade_without_proxy(self, mock_deployer, workspace):
        config = write_table(workspace, ethereum=local_entry(mode="upgrade"))

        assert main(["ethereum", "--config", config]) == 1
        mock_deployer.connect.assert_not_called()

    @patch('atlasdex_migrations.deploy.ContractDeployer')
    def test_remote_failure(self, mock_deployer, workspace, capsys):
        from atlasdex_migrations.errors import RemoteOperationError

        config = write_table(workspace, ethereum=local_entry())
        mock_deployer.connect.return_value = fake_deployer([IMPLEMENTATION, RemoteOperationError("reverted")])

        assert main(["ethereum", "--config", config]) == 1
        assert "Deployment complete" not in capsys.readouterr().out
        assert not (workspace / "deployments").exists()

    def test_missing_network_argument(self):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 2

    @patch('atlasdex_migrations.deploy.ContractDeployer')
    def test_corrupt_record_exits_cleanly(self, mock_deployer, workspace):
        config = write_table(workspace, ethereum=local_entry())
        (workspace / "deployments").mkdir()
        (workspace / "deployments" / "ethereum.json").write_text("{trunc")

        assert main(["ethereum", "--config", config, "--dry-run"]) == 1
        mock_deployer.connect.assert_not_called()

    @patch('atlasdex_migrations.deploy.ContractDeployer')
    def test_unwritable_record_still_reports_addresses(self, mock_deployer, workspace, capsys, caplog):
        config = write_table(workspace, ethereum=local_entry())
        (workspace / "deployments").write_text("not a directory")
        mock_deployer.connect.return_value = fake_deployer([IMPLEMENTATION, SETUP, PROXY])

        assert main(["ethereum", "--config", config]) == 0

        out = capsys.readouterr().out
        assert f"Proxy: {PROXY}" in out
        assert "Deployment complete" in out
        assert "Could not write deployment record" in caplog.text
        assert PROXY in caplog.text

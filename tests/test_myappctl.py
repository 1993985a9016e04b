"""Unit tests for myappctl.py - Command line interface."""

import json
from unittest.mock import AsyncMock, patch

import pytest
import yaml
from click.testing import CliRunner

from errors import ClientReadError
from myappctl import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def manifest(tmp_path):
    path = tmp_path / "myapp.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "apiVersion": "example.com/v1",
                "kind": "MyApp",
                "metadata": {"name": "demo"},
                "spec": {"image": "nginx:1.25", "replicas": 2},
            }
        )
    )
    return path


@pytest.fixture
def cli_client(fake_client):
    """The in-memory cluster, handed out wherever the CLI builds a client."""
    fake_client.connect = AsyncMock()
    fake_client.close = AsyncMock()
    with patch("myappctl.ClusterClient", return_value=fake_client):
        yield fake_client


class TestRender:
    """Tests for the render command."""

    def test_render_yaml(self, runner, manifest):
        """Test rendering both children as YAML."""
        result = runner.invoke(cli, ["render", str(manifest), "-n", "team-a"])

        assert result.exit_code == 0, result.output
        deployment, pdb = list(yaml.safe_load_all(result.output))
        assert deployment["kind"] == "Deployment"
        assert deployment["metadata"] == {"name": "demo", "namespace": "team-a"}
        assert deployment["spec"]["replicas"] == 2
        assert pdb["kind"] == "PodDisruptionBudget"
        assert pdb["spec"]["maxUnavailable"] == 1

    def test_render_json(self, runner, tmp_path):
        """Test rendering from a JSON manifest."""
        path = tmp_path / "myapp.json"
        path.write_text(
            json.dumps(
                {
                    "metadata": {"name": "web", "namespace": "prod"},
                    "spec": {"image": "web:2"},
                }
            )
        )

        result = runner.invoke(cli, ["render", str(path), "-o", "json"])

        assert result.exit_code == 0, result.output
        children = json.loads(result.output)
        assert [c["kind"] for c in children] == ["Deployment", "PodDisruptionBudget"]
        assert children[0]["metadata"]["namespace"] == "prod"
        assert "replicas" not in children[0]["spec"]

    def test_render_invalid_manifest(self, runner, tmp_path):
        """Test that an invalid manifest is reported."""
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"metadata": {"name": "demo"}, "spec": {}}))

        result = runner.invoke(cli, ["render", str(path)])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_render_missing_file(self, runner):
        """Test rendering a file that does not exist."""
        result = runner.invoke(cli, ["render", "/nonexistent/myapp.yaml"])
        assert result.exit_code == 2


class TestReconcile:
    """Tests for the reconcile command."""

    def test_bad_key(self, runner):
        """Test that keys must be namespace/name."""
        result = runner.invoke(cli, ["reconcile", "demo"])
        assert result.exit_code == 2
        assert "namespace/name" in result.output

    def test_single_pass(self, runner, cli_client, myapp):
        """Test running one reconcile pass."""
        cli_client.add_object("MyApp", myapp)

        result = runner.invoke(cli, ["reconcile", "default/demo"])

        assert result.exit_code == 0, result.output
        assert "Reconciled default/demo in 1 pass(es)" in result.output
        assert cli_client.created_kinds() == ["Deployment"]
        cli_client.connect.assert_awaited_once()
        cli_client.close.assert_awaited_once()

    def test_converge(self, runner, cli_client, myapp):
        """Test looping until no requeue is asked for."""
        cli_client.add_object("MyApp", myapp)

        result = runner.invoke(cli, ["reconcile", "default/demo", "--converge"])

        assert result.exit_code == 0, result.output
        assert "Reconciled default/demo in 3 pass(es)" in result.output
        assert cli_client.created_kinds() == ["Deployment", "PodDisruptionBudget"]

    def test_missing_myapp(self, runner, cli_client):
        """Test reconciling a MyApp that does not exist."""
        result = runner.invoke(cli, ["reconcile", "default/demo", "--converge"])

        assert result.exit_code == 0, result.output
        assert "in 1 pass(es)" in result.output
        assert cli_client.create_attempts == []

    def test_error_exits_nonzero(self, runner, cli_client):
        """Test that a failed pass exits with status 1."""
        cli_client.read_errors["MyApp"] = ClientReadError("apiserver unavailable")

        result = runner.invoke(cli, ["reconcile", "default/demo"])

        assert result.exit_code == 1
        assert "Error: apiserver unavailable" in result.output
        cli_client.close.assert_awaited_once()


class TestStatus:
    """Tests for the status command."""

    def test_status_table(self, runner, cli_client, myapp_factory):
        """Test the status table of MyApps and their children."""
        cli_client.add_object("MyApp", myapp_factory(name="demo"))
        cli_client.add_object("MyApp", myapp_factory(name="idle", replicas=None))
        cli_client.add_object(
            "Deployment", {"metadata": {"namespace": "default", "name": "demo"}}
        )

        result = runner.invoke(cli, ["status"])

        assert result.exit_code == 0, result.output
        lines = result.output.strip().splitlines()
        assert lines[0].split() == [
            "NAMESPACE",
            "NAME",
            "IMAGE",
            "REPLICAS",
            "DEPLOYMENT",
            "PDB",
        ]
        assert lines[1].split() == ["default", "demo", "nginx:1.25", "3", "yes", "no"]
        assert lines[2].split() == ["default", "idle", "nginx:1.25", "-", "no", "no"]

    def test_status_empty(self, runner, cli_client):
        """Test status with no MyApps."""
        result = runner.invoke(cli, ["status", "-n", "team-a"])

        assert result.exit_code == 0, result.output
        assert "No MyApp resources found" in result.output

    def test_status_read_error(self, runner, cli_client, myapp):
        """Test that read errors are shown in the table."""
        cli_client.add_object("MyApp", myapp)
        cli_client.read_errors["Deployment"] = ClientReadError("forbidden")

        result = runner.invoke(cli, ["status"])

        assert result.exit_code == 1
        assert "forbidden" in result.output

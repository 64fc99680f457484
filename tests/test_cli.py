"""
Tests for the command line interface.
"""

import os
from unittest.mock import patch

import numpy as np
import pytest
import yaml
from click.testing import CliRunner

from main import cli


@pytest.fixture
def runner():
    return CliRunner()


class TestCommands:
    """Test informational and configuration commands."""

    def test_help(self, runner):
        result = runner.invoke(cli, ['--help'])
        assert result.exit_code == 0
        assert "mask-rcnn" in result.output
        assert "classroom" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ['version'])
        assert result.exit_code == 0
        assert "ie-demos" in result.output

    def test_create_then_validate(self, runner, temp_dir):
        config_file = temp_dir / "config.yaml"

        created = runner.invoke(cli, ['create-config', str(config_file)])
        assert created.exit_code == 0
        assert config_file.exists()

        validated = runner.invoke(cli, ['validate-config', str(config_file)])
        assert validated.exit_code == 0
        assert "Configuration is valid" in validated.output

    def test_validate_invalid_config(self, runner, temp_dir):
        config_file = temp_dir / "bad.yaml"
        config_file.write_text(yaml.dump({"classification": {"top_k": 0}}))

        result = runner.invoke(cli, ['validate-config', str(config_file)])

        assert result.exit_code == 1
        assert "top_k" in result.output

    def test_validate_missing_config(self, runner, temp_dir):
        result = runner.invoke(cli, ['validate-config', str(temp_dir / "missing.yaml")])
        assert result.exit_code == 1

    def test_broken_config_option(self, runner, temp_dir):
        config_file = temp_dir / "broken.yaml"
        config_file.write_text("engine: [1\n")

        result = runner.invoke(cli, ['--config', str(config_file), 'devices'])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_devices(self, runner, fake_engine):
        with patch('main.create_engine', return_value=fake_engine):
            result = runner.invoke(cli, ['devices'])

        assert result.exit_code == 0
        assert "CPU" in result.output
        assert "GPU" in result.output

    def test_verbose_lists_environment_overrides(self, runner):
        with patch.dict(os.environ, {"IE_DEMOS_DEVICE": "GPU"}):
            result = runner.invoke(cli, ['-v', 'version'])

        assert result.exit_code == 0
        assert "Environment override: IE_DEMOS_DEVICE=GPU" in result.output


class TestDemoCommands:
    """Test running demos through the CLI with a fake engine."""

    def test_missing_model_is_usage_error(self, runner, temp_dir, sample_image):
        result = runner.invoke(cli, ['classify', '-m', str(temp_dir / "missing.xml"), '-i', str(sample_image)])
        assert result.exit_code == 2

    def test_classify(self, runner, fake_engine, model_file, sample_image, temp_dir):
        model = model_file("cls.xml")
        fake_engine.register(model, inputs={"data": (1, 3, 8, 8)}, outputs={"prob": (1, 3)},
                             responder={"prob": np.array([[0.1, 0.8, 0.1]], dtype=np.float32)})
        output_dir = temp_dir / "out"

        with patch('main.create_engine', return_value=fake_engine):
            result = runner.invoke(cli, [
                'classify', '-m', model, '-i', str(sample_image), '--top-k', '2', '-o', str(output_dir)
            ])

        assert result.exit_code == 0, result.output
        assert "Latency" in result.output
        assert "Networks" not in result.output
        assert (output_dir / "classification_00000.png").exists()
        assert fake_engine.loaded[0]['model_type'] == "Classification"

    def test_mask_rcnn_without_valid_images(self, runner, fake_engine, model_file, temp_dir):
        model = model_file("mask_rcnn.xml")
        fake_engine.register(model, inputs={"image": (1, 3, 16, 16)},
                             outputs={"reshape_do_2d": (1, 7), "masks": (1, 1, 4, 4)})
        text_file = temp_dir / "notes.txt"
        text_file.write_text("text")

        with patch('main.create_engine', return_value=fake_engine):
            result = runner.invoke(cli, ['mask-rcnn', '-m', model, '-i', str(text_file), '--no-save'])

        assert result.exit_code == 1
        assert "Valid input images were not found!" in result.output

    def test_device_flag_reaches_engine(self, runner, fake_engine, model_file, sample_image):
        model = model_file("cls.xml")
        fake_engine.register(model, inputs={"data": (1, 3, 8, 8)}, outputs={"prob": (1, 2)})

        with patch('main.create_engine', return_value=fake_engine):
            result = runner.invoke(cli, ['classify', '-m', model, '-i', str(sample_image), '-d', 'gpu', '--no-save'])

        assert result.exit_code == 0, result.output
        assert fake_engine.loaded[0]['device'] == "GPU"

    def test_verbose_lists_networks(self, runner, fake_engine, model_file, sample_image):
        model = model_file("cls.xml")
        fake_engine.register(model, inputs={"data": (1, 3, 8, 8)}, outputs={"prob": (1, 2)})

        with patch('main.create_engine', return_value=fake_engine):
            result = runner.invoke(cli, ['-v', 'classify', '-m', model, '-i', str(sample_image), '--no-save'])

        assert result.exit_code == 0, result.output
        assert "Networks" in result.output
        assert "Classification" in result.output

    def test_log_level_reconfigures_logging(self, runner, fake_engine, model_file, sample_image):
        model = model_file("cls.xml")
        fake_engine.register(model, inputs={"data": (1, 3, 8, 8)}, outputs={"prob": (1, 2)})

        with patch('main.create_engine', return_value=fake_engine), patch('main.setup_logging') as setup:
            result = runner.invoke(cli, ['--log-level', 'WARNING', 'classify', '-m', model, '-i', str(sample_image),
                                         '--no-save'])

        assert result.exit_code == 0, result.output
        assert setup.call_args[0][0].level.value == "warning"

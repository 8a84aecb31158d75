"""Tests for bootrun.config module."""

from __future__ import annotations

import pytest
import yaml

from bootrun.config import load_config, load_config_document, parse_model
from bootrun.exceptions import ConfigError, DuplicateSchemeError
from bootrun.models import Context


class TestLoadConfigDocument:
    def test_missing_config_raises(self, tmp_path):
        with pytest.raises(ConfigError, match="Configuration file missing"):
            load_config_document(tmp_path / "missing.toml")

    def test_invalid_toml_raises(self, tmp_path):
        path = tmp_path / "OSDK.toml"
        path.write_text("[boot\nmethod = 1\n")
        with pytest.raises(ConfigError, match="invalid TOML"):
            load_config_document(path)

    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / "bootrun.yaml"
        path.write_text("boot: [unclosed\n")
        with pytest.raises(ConfigError, match="invalid YAML"):
            load_config_document(path)

    def test_yaml_must_be_mapping(self, tmp_path):
        path = tmp_path / "bootrun.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping at the top level"):
            load_config_document(path)

    def test_empty_yaml_is_empty_document(self, tmp_path):
        path = tmp_path / "bootrun.yaml"
        path.write_text("")
        assert load_config_document(path) == {}


class TestDuplicateSchemes:
    def test_duplicate_toml_scheme_raises(self, tmp_path):
        path = tmp_path / "OSDK.toml"
        path.write_text(
            '[boot]\nmethod = "qemu-direct"\n\n'
            '[scheme."tdx"]\nboot.method = "grub-qcow2"\n\n'
            '[scheme.tdx]\ngrub.protocol = "linux"\n'
        )
        with pytest.raises(DuplicateSchemeError, match="'tdx'") as exc:
            load_config(path)
        assert exc.value.name == "tdx"

    def test_toml_subtables_are_not_duplicates(self, tmp_path):
        path = tmp_path / "OSDK.toml"
        path.write_text(
            '[boot]\nmethod = "qemu-direct"\n\n'
            '[scheme."tdx"]\nsupported_archs = ["x86_64"]\n\n'
            '[scheme."tdx".grub]\nprotocol = "linux"\n'
        )
        model = load_config(path)
        assert model.schemes["tdx"].overrides["grub.protocol"] == "linux"

    def test_duplicate_toml_inline_tables_raise(self, tmp_path):
        path = tmp_path / "OSDK.toml"
        path.write_text(
            "[scheme]\n"
            'tdx = { boot.method = "grub-qcow2" }\n'
            'tdx = { boot.method = "qemu-direct" }\n'
        )
        with pytest.raises(DuplicateSchemeError, match="'tdx'") as exc:
            load_config(path)
        assert exc.value.exit_code == 3

    def test_toml_header_and_dotted_keys_raise(self, tmp_path):
        path = tmp_path / "OSDK.toml"
        path.write_text(
            '[scheme.tdx]\ngrub.protocol = "linux"\n\n'
            '[scheme]\ntdx.boot.method = "grub-qcow2"\n'
        )
        with pytest.raises(DuplicateSchemeError, match="'tdx'"):
            load_config(path)

    def test_toml_dotted_keys_of_one_scheme_are_not_duplicates(self, tmp_path):
        path = tmp_path / "OSDK.toml"
        path.write_text(
            "[scheme]\n"
            'tdx.boot.method = "grub-qcow2"\n'
            'tdx.grub.protocol = "linux"\n'
            'microvm = { boot = { method = "qemu-direct" } }\n'
        )
        model = load_config(path)
        assert model.schemes["tdx"].overrides["grub.protocol"] == "linux"
        assert model.schemes["microvm"].overrides["boot.method"] == "qemu-direct"

    def test_unrelated_toml_error_stays_config_error(self, tmp_path):
        path = tmp_path / "OSDK.toml"
        path.write_text('[scheme]\ntdx = { boot.method = "grub-qcow2" }\n[boot\n')
        with pytest.raises(ConfigError, match="invalid TOML") as exc:
            load_config(path)
        assert not isinstance(exc.value, DuplicateSchemeError)

    def test_duplicate_yaml_scheme_raises(self, tmp_path):
        path = tmp_path / "bootrun.yaml"
        path.write_text(
            "boot:\n  method: qemu-direct\n"
            "scheme:\n"
            "  microvm:\n    boot:\n      method: qemu-direct\n"
            "  microvm:\n    qemu:\n      args: -M microvm\n"
        )
        with pytest.raises(DuplicateSchemeError, match="'microvm'"):
            load_config(path)

    def test_duplicate_is_config_error(self, tmp_path):
        path = tmp_path / "bootrun.yaml"
        path.write_text("scheme:\n  a: {}\n  a: {}\n")
        with pytest.raises(ConfigError):
            load_config(path)


class TestParseModel:
    def test_osdk_document(self, osdk_model):
        assert osdk_model.base["boot.method"] == "grub-rescue-iso"
        assert osdk_model.base["grub.protocol"] == "multiboot2"
        assert osdk_model.base["qemu.args"] == "$(./tools/qemu_args.sh normal -ovmf)"

        run = osdk_model.contexts[Context.RUN]
        assert run["boot.init_args"] == ["sh", "-l"]
        assert run["boot.initramfs"] == "regression/build/initramfs.cpio.gz"
        assert run["boot.kcmd_args"][-1] == "init=/usr/bin/busybox"

        test = osdk_model.contexts[Context.TEST]
        assert test["boot.method"] == "qemu-direct"
        assert test["qemu.args"] == "$(./tools/qemu_args.sh test)"

        assert sorted(osdk_model.schemes) == ["iommu", "microvm", "tdx"]
        assert osdk_model.schemes["microvm"].supported_archs == ()
        tdx = osdk_model.schemes["tdx"]
        assert tdx.supported_archs == ("x86_64",)
        assert tdx.overrides["build.features"] == ["intel_tdx"]
        assert tdx.overrides["grub.mkrescue_path"] == "~/tdx-tools/grub"
        assert "-m ${MEM:-8G}" in tdx.overrides["qemu.args"]

    def test_yaml_document_matches_toml_shape(self, tmp_path):
        document = {
            "boot": {"method": "grub-rescue-iso"},
            "test": {"boot": {"method": "qemu-direct"}},
            "scheme": {"iommu": {"supported_archs": ["amd64"], "qemu": {"args": "-device intel-iommu"}}},
        }
        path = tmp_path / "bootrun.yaml"
        path.write_text(yaml.dump(document))
        model = load_config(path)
        assert model.contexts[Context.TEST]["boot.method"] == "qemu-direct"
        assert model.schemes["iommu"].supported_archs == ("x86_64",)

    def test_missing_contexts_are_empty(self):
        model = parse_model({"boot": {"method": "qemu-direct"}})
        assert dict(model.contexts[Context.RUN]) == {}
        assert dict(model.contexts[Context.TEST]) == {}
        assert dict(model.schemes) == {}

    def test_unknown_section_raises(self):
        with pytest.raises(ConfigError, match="Unknown configuration section 'network'"):
            parse_model({"network": {"mode": "nat"}})

    def test_unknown_key_raises(self):
        with pytest.raises(ConfigError, match="Unknown configuration key 'run.boot.cmdline'"):
            parse_model({"run": {"boot": {"cmdline": "quiet"}}})

    def test_unknown_scheme_key_raises(self):
        with pytest.raises(ConfigError, match="scheme.tdx.grub.path"):
            parse_model({"scheme": {"tdx": {"grub": {"path": "/opt/grub"}}}})

    def test_mistyped_scalar_raises(self):
        with pytest.raises(ConfigError, match="'boot.method' must be a str"):
            parse_model({"boot": {"method": 3}})

    def test_mistyped_list_raises(self):
        with pytest.raises(ConfigError, match="'run.boot.kcmd_args' must be a list of strings"):
            parse_model({"run": {"boot": {"kcmd_args": "init=/bin/sh"}}})

    def test_section_must_be_table(self):
        with pytest.raises(ConfigError, match="'grub' must be a table"):
            parse_model({"grub": "multiboot2"})

    def test_unsupported_arch_in_scheme_raises(self):
        with pytest.raises(ConfigError, match="unsupported arch 'mips'"):
            parse_model({"scheme": {"odd": {"supported_archs": ["mips"]}}})

    def test_model_is_read_only(self, osdk_model):
        with pytest.raises(TypeError):
            osdk_model.base["boot.method"] = "qemu-direct"  # type: ignore[index]

"""Tests for spec loading and validation."""
import pytest

from pveforge.config import PRESETS, SpecLoader, SpecValidator
from pveforge.config.loader import merge_layer
from pveforge.config.presets import DEFAULTS
from pveforge.core.errors import InvalidSpec
from pveforge.models.container import MountSpec


class TestPresets:
    """Test the bundled presets."""

    @pytest.mark.parametrize("name", sorted(PRESETS))
    def test_every_preset_builds(self, name):
        """Test each preset yields a valid spec."""
        spec = SpecLoader().load(preset=name)
        assert spec.preset == name
        assert spec.vmid == 100

    def test_container_preset(self):
        """Test the default container preset."""
        spec = SpecLoader().load()
        assert spec.hostname == "Container"
        assert (spec.cores, spec.memory, spec.swap, spec.disk_size) == (3, 1024, 512, 8)
        assert spec.gpu.enabled
        assert spec.start
        assert spec.apt_release == "bookworm"
        assert spec.packages == ("curl",)

    def test_plex_preset(self):
        """Test the unprivileged Plex preset."""
        spec = SpecLoader().load(preset="plex")
        assert spec.hostname == "Plex"
        assert (spec.memory, spec.swap) == (8192, 2048)
        assert spec.apps == ("plex",)
        assert not spec.privileged
        assert spec.mounts == ()

    def test_plex_privileged_preset(self):
        """Test the privileged Plex preset stays stopped."""
        spec = SpecLoader().load(preset="plex-privileged")
        assert spec.privileged
        assert spec.features == ("nesting=1",)
        assert not spec.needs_start

    def test_unknown_preset(self):
        """Test an unknown preset name."""
        with pytest.raises(InvalidSpec, match="Unknown preset 'jellyfin'"):
            SpecLoader().load(preset="jellyfin")

    def test_presets_do_not_leak_into_defaults(self):
        """Test overrides do not mutate DEFAULTS."""
        SpecLoader().load(preset="plex", overrides={'network': {'ip': '10.0.0.5/24'}})
        assert DEFAULTS['network']['ip'] == 'dhcp'


class TestLayering:
    """Test merging presets, files, env and flags."""

    def test_merge_skips_none_and_merges_nested(self):
        """Test None is skipped and nested keys merge."""
        base = {'cores': 2, 'network': {'bridge': 'vmbr0', 'ip': 'dhcp'}}
        merged = merge_layer(base, {'cores': None, 'network': {'ip': '10.0.0.2/24', 'bridge': None}})
        assert merged == {'cores': 2, 'network': {'bridge': 'vmbr0', 'ip': '10.0.0.2/24'}}

    def test_spec_file_over_preset_and_flags_over_file(self, tmp_path):
        """Test layer precedence."""
        spec_file = tmp_path / "plex.yml"
        spec_file.write_text(
            "preset: plex\n"
            "vmid: 210\n"
            "cores: 4\n"
            "network:\n"
            "  ip: 192.168.1.210/24\n"
            "  gateway: 192.168.1.1\n"
            "mounts:\n"
            "  - /mnt/pve/synology:/synology:ro\n"
            "  - host_path: /tank/downloads\n"
            "    guest_path: /downloads\n"
        )

        spec = SpecLoader().load(spec_file=str(spec_file), overrides={'cores': 6})

        assert spec.preset == "plex"
        assert spec.vmid == 210
        assert spec.cores == 6
        assert spec.memory == 8192
        assert spec.network.ip == "192.168.1.210/24"
        assert spec.network.bridge == "vmbr0"
        assert spec.mounts == (
            MountSpec("/mnt/pve/synology", "/synology", read_only=True),
            MountSpec("/tank/downloads", "/downloads"),
        )

    def test_password_from_environment(self, monkeypatch):
        """Test the password from PVEFORGE_ROOT_PASSWORD."""
        monkeypatch.setenv("PVEFORGE_ROOT_PASSWORD", "from-env")
        spec = SpecLoader().load()
        assert spec.password == "from-env"
        assert spec.password_confirmation is None

    def test_missing_spec_file(self, tmp_path):
        """Test a missing spec file."""
        with pytest.raises(InvalidSpec, match="not found"):
            SpecLoader().load(spec_file=str(tmp_path / "missing.yml"))

    def test_spec_file_must_be_mapping(self, tmp_path):
        """Test a spec file that is not a mapping."""
        spec_file = tmp_path / "list.yml"
        spec_file.write_text("- 1\n- 2\n")
        with pytest.raises(InvalidSpec, match="mapping"):
            SpecLoader().load(spec_file=str(spec_file))

    def test_unquoted_octal_device_mode_rejected(self, tmp_path):
        """YAML reads mode: 0660 as 432; it must not reach the config as mode=432."""
        spec_file = tmp_path / "serial.yml"
        spec_file.write_text(
            "devices:\n"
            "  - host_path: /dev/ttyUSB0\n"
            "    mode: 0660\n"
        )

        with pytest.raises(InvalidSpec) as exc:
            SpecLoader().load(spec_file=str(spec_file))

        assert any("devices[0].mode" in e and "quoted" in e for e in exc.value.errors)

    def test_unquoted_octal_gpu_mode_rejected(self, tmp_path):
        """gpu.mode: 0644 would otherwise slip through as '420'."""
        spec_file = tmp_path / "gpu.yml"
        spec_file.write_text("gpu:\n  mode: 0644\n")

        with pytest.raises(InvalidSpec, match="gpu.mode"):
            SpecLoader().load(spec_file=str(spec_file))

    def test_quoted_device_mode_kept(self, tmp_path):
        """A quoted mode is passed through unchanged."""
        spec_file = tmp_path / "serial.yml"
        spec_file.write_text(
            "devices:\n"
            "  - host_path: /dev/ttyUSB0\n"
            "    mode: '0660'\n"
        )

        spec = SpecLoader().load(spec_file=str(spec_file))

        assert spec.devices[0].mode == "0660"

    @pytest.mark.parametrize("value", ["true", "false"])
    def test_gpu_boolean_shorthand(self, tmp_path, value):
        """gpu: true is short for gpu: {enabled: true}."""
        spec_file = tmp_path / "gpu.yml"
        spec_file.write_text(f"gpu: {value}\n")

        spec = SpecLoader().load(spec_file=str(spec_file))

        assert spec.gpu.enabled is (value == "true")
        assert spec.gpu.render_gid == 993

    @pytest.mark.parametrize("content, field", [
        ("network: vmbr1\n", "network must be a mapping"),
        ("gpu: card1\n", "gpu must be a mapping"),
        ("mounts: /tank:/tank\n", "mounts must be a list"),
        ("devices: /dev/ttyUSB0\n", "devices must be a list"),
        ("features: nesting=1\n", "features must be a list"),
        ("packages: curl\n", "packages must be a list"),
    ])
    def test_wrongly_shaped_fields_rejected(self, tmp_path, content, field):
        """Scalars where a mapping or list belongs are reported, not crashed on."""
        spec_file = tmp_path / "bad.yml"
        spec_file.write_text(content)

        with pytest.raises(InvalidSpec) as exc:
            SpecLoader().load(spec_file=str(spec_file))

        assert any(field in e for e in exc.value.errors)

    def test_numeric_password_rejected(self, tmp_path):
        """An unquoted numeric password is not silently converted."""
        spec_file = tmp_path / "pw.yml"
        spec_file.write_text("password: 1234\n")

        with pytest.raises(InvalidSpec, match="password must be a string"):
            SpecLoader().load(spec_file=str(spec_file))

    def test_bad_mount_shorthand(self):
        """Test malformed mount shorthand."""
        with pytest.raises(InvalidSpec, match="HOST:GUEST"):
            SpecLoader().load(overrides={'mounts': ['/only-host']})


class TestValidator:
    """Test spec validation."""

    def _data(self, **changes):
        data = SpecLoader().resolve()
        data.update(changes)
        return data

    def test_defaults_are_valid(self):
        """Test the defaults validate."""
        SpecValidator().validate(self._data())

    def test_collects_all_errors(self):
        """Test every error is reported at once."""
        with pytest.raises(InvalidSpec) as exc:
            SpecValidator().validate(self._data(vmid=42, hostname="bad_name", cores=0, colour="red"))

        errors = exc.value.errors
        assert any("vmid" in e for e in errors)
        assert any("hostname" in e for e in errors)
        assert any("cores" in e for e in errors)
        assert any("colour" in e for e in errors)
        assert exc.value.step == "validate"

    @pytest.mark.parametrize("changes", [
        {'swap': 0},
        {'memory': True},
        {'storage': 'local lvm'},
        {'os_version': 'debian'},
        {'features': ['nesting']},
        {'network': {'bridge': 'vmbr0', 'ip': '192.168.1.5'}},
        {'network': {'bridge': 'vmbr0', 'ip': '192.168.1.500/24'}},
        {'network': {'bridge': 'vmbr0', 'ip': 'dhcp', 'gateway': '192.168.1.1'}},
        {'gpu': {'enabled': True, 'mode': '0999'}},
        {'devices': [{'host_path': 'dev/ttyUSB0'}]},
        {'mounts': [{'host_path': '/a', 'guest_path': 'b'}]},
        {'mounts': [{'host_path': '/a', 'guest_path': '/b'}, {'host_path': '/c', 'guest_path': '/b'}]},
        {'mounts': [{'host_path': '/a', 'guest_path': '/b', 'slot': 300}]},
    ])
    def test_rejects(self, changes):
        """Test invalid field values."""
        with pytest.raises(InvalidSpec):
            SpecValidator().validate(self._data(**changes))

    def test_static_ip_with_gateway(self):
        """Test a static address with gateway validates."""
        SpecValidator().validate(self._data(
            network={'bridge': 'vmbr0', 'ip': '192.168.1.5/24', 'gateway': '192.168.1.1'}
        ))

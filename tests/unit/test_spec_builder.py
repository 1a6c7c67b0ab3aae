"""Unit tests for container spec assembly."""

import pytest

from envd_lifecycle.domain.entities.container import MountKind, MountSpec, ServiceFlags
from envd_lifecycle.domain.errors import ResourceAllocationError, ValidationError
from envd_lifecycle.domain.services.port_allocator import PortAllocator
from envd_lifecycle.domain.services.spec_builder import (
    GPU_CAPABILITIES,
    ContainerSpecBuilder,
    ServicePorts,
    parse_mount_option,
)
from envd_lifecycle.domain.value_objects.labels import (
    LABEL_JUPYTER_PORT,
    LABEL_MANAGED,
    LABEL_RSTUDIO_PORT,
    LABEL_SSH_PORT,
    ports_from_labels,
)


@pytest.fixture
def builder(sequential_allocator: PortAllocator) -> ContainerSpecBuilder:
    return ContainerSpecBuilder(port_allocator=sequential_allocator)


@pytest.mark.unit
class TestParseMountOption:
    """Tests for mount option parsing."""

    def test_valid_option(self):
        """Test hostPath:containerPath is parsed into a bind mount."""
        mount = parse_mount_option("/data:/mnt/data")
        assert mount == MountSpec(source="/data", target="/mnt/data", kind=MountKind.BIND)

    @pytest.mark.parametrize("option", ["/data", "/a:/b:/c", ":/mnt", "/data:", ""])
    def test_malformed_option(self, option: str):
        """Test anything but exactly two non-empty parts is rejected."""
        with pytest.raises(ValidationError, match="invalid mount option"):
            parse_mount_option(option)


@pytest.mark.unit
class TestContainerSpecBuilder:
    """Tests for ContainerSpecBuilder."""

    def test_minimal_spec(self, builder: ContainerSpecBuilder):
        """Test the smallest request yields workdir, user, ssh and the context mount."""
        spec = builder.build(tag="envd:dev", name="myenv", build_context="/src/myenv", ssh_host_port=2222)

        assert spec.image == "envd:dev"
        assert spec.name == "myenv"
        assert spec.working_dir == "/home/envd/myenv"
        assert spec.user == "envd"
        assert spec.mounts == [MountSpec(source="/src/myenv", target="/home/envd/myenv")]
        assert len(spec.port_bindings) == 1
        ssh = spec.binding_for(2222)
        assert ssh is not None
        assert (ssh.host_ip, ssh.host_port, ssh.key) == ("127.0.0.1", 2222, "2222/tcp")
        assert spec.exposed_ports == set()
        assert spec.device_request is None

    def test_trailing_slash_in_build_context(self, builder: ContainerSpecBuilder):
        """Test the working directory uses the last non-empty path component."""
        spec = builder.build(tag="envd:dev", name="myenv", build_context="/src/project/", ssh_host_port=2222)
        assert spec.working_dir == "/home/envd/project"

    def test_user_mounts_precede_context_mount(self, builder: ContainerSpecBuilder):
        """Test user mounts keep their order and the build context comes last."""
        spec = builder.build(
            tag="envd:dev",
            name="myenv",
            build_context="/src/myenv",
            ssh_host_port=2222,
            mount_options=["/data:/mnt/data", "/cache:/root/.cache"],
        )
        assert [m.target for m in spec.mounts] == ["/mnt/data", "/root/.cache", "/home/envd/myenv"]

    def test_malformed_mount_rejects_build(self, builder: ContainerSpecBuilder):
        """Test a bad mount option fails the whole build."""
        with pytest.raises(ValidationError):
            builder.build(
                tag="envd:dev",
                name="myenv",
                build_context="/src/myenv",
                ssh_host_port=2222,
                mount_options=["/data:/mnt:/x"],
            )

    def test_mount_over_working_dir_rejected(self, builder: ContainerSpecBuilder):
        """Test a user mount cannot shadow the working directory."""
        with pytest.raises(ValidationError, match="already mounted"):
            builder.build(
                tag="envd:dev",
                name="myenv",
                build_context="/src/myenv",
                ssh_host_port=2222,
                mount_options=["/other:/home/envd/myenv"],
            )

    def test_jupyter_port(self, builder: ContainerSpecBuilder):
        """Test a declared jupyter service gets a freshly allocated host port."""
        spec = builder.build(
            tag="envd:dev",
            name="myenv",
            build_context="/src/myenv",
            ssh_host_port=2222,
            services=ServiceFlags(jupyter=True),
        )
        jupyter = spec.binding_for(8888)
        assert jupyter is not None
        assert jupyter.host_port == 40000
        assert jupyter.host_ip == "127.0.0.1"
        assert spec.exposed_ports == {8888}
        assert spec.labels[LABEL_JUPYTER_PORT] == "40000"
        assert LABEL_RSTUDIO_PORT not in spec.labels

    def test_all_services(self, builder: ContainerSpecBuilder):
        """Test ssh, jupyter and rstudio all bind distinct loopback host ports."""
        spec = builder.build(
            tag="envd:dev",
            name="myenv",
            build_context="/src/myenv",
            ssh_host_port=2222,
            services=ServiceFlags(jupyter=True, rstudio=True),
        )
        host_ports = spec.host_ports()
        assert host_ports == [2222, 40000, 40001]
        assert len(set(host_ports)) == len(host_ports)
        assert all(b.host_ip == "127.0.0.1" for b in spec.port_bindings)
        assert spec.exposed_ports == {8888, 8787}
        assert ports_from_labels(spec.labels) == {"ssh": 2222, "jupyter": 40000, "rstudio": 40001}

    def test_service_port_colliding_with_ssh(self):
        """Test an allocated port equal to the ssh port fails the build."""
        builder = ContainerSpecBuilder(port_allocator=PortAllocator(probe=lambda host: 2222))
        with pytest.raises(ResourceAllocationError):
            builder.build(
                tag="envd:dev",
                name="myenv",
                build_context="/src/myenv",
                ssh_host_port=2222,
                services=ServiceFlags(jupyter=True),
            )

    def test_allocation_failure_propagates(self):
        """Test a failed probe surfaces as ResourceAllocationError."""
        def probe(host: str) -> int:
            raise OSError("no ports")

        builder = ContainerSpecBuilder(port_allocator=PortAllocator(probe=probe))
        with pytest.raises(ResourceAllocationError):
            builder.build(
                tag="envd:dev",
                name="myenv",
                build_context="/src/myenv",
                ssh_host_port=2222,
                services=ServiceFlags(rstudio=True),
            )

    def test_gpu_request(self, builder: ContainerSpecBuilder):
        """Test GPUs attach one nvidia request with the full capability set."""
        spec = builder.build(
            tag="envd:dev",
            name="myenv",
            build_context="/src/myenv",
            ssh_host_port=2222,
            gpu_enabled=True,
            num_gpus=2,
        )
        assert len(spec.device_requests) == 1
        request = spec.device_requests[0]
        assert request.driver == "nvidia"
        assert request.count == 2
        assert request.capabilities == GPU_CAPABILITIES

    def test_gpu_count_ignored_when_disabled(self, builder: ContainerSpecBuilder):
        """Test no device request is attached without GPU support."""
        spec = builder.build(
            tag="envd:dev", name="myenv", build_context="/src/myenv", ssh_host_port=2222, num_gpus=4
        )
        assert spec.device_requests == []

    def test_negative_gpu_count_rejected(self, builder: ContainerSpecBuilder):
        """Test a negative GPU count is a validation error."""
        with pytest.raises(ValidationError):
            builder.build(
                tag="envd:dev",
                name="myenv",
                build_context="/src/myenv",
                ssh_host_port=2222,
                gpu_enabled=True,
                num_gpus=-1,
            )

    def test_labels(self, builder: ContainerSpecBuilder):
        """Test topology labels are attached."""
        spec = builder.build(tag="envd:dev", name="myenv", build_context="/src/myenv", ssh_host_port=2300)
        assert spec.labels[LABEL_MANAGED] == "true"
        assert spec.labels[LABEL_SSH_PORT] == "2300"

    def test_custom_service_ports_and_home(self, sequential_allocator: PortAllocator):
        """Test container-side ports and home prefix come from the builder settings."""
        builder = ContainerSpecBuilder(
            port_allocator=sequential_allocator,
            service_ports=ServicePorts(ssh=22, jupyter=9999, rstudio=8000),
            home_prefix="/workspace",
            user="dev",
        )
        spec = builder.build(
            tag="envd:dev",
            name="myenv",
            build_context="/src/myenv",
            ssh_host_port=2222,
            services=ServiceFlags(jupyter=True),
        )
        assert spec.working_dir == "/workspace/myenv"
        assert spec.user == "dev"
        assert spec.binding_for(22).host_port == 2222
        assert spec.binding_for(9999).host_port == 40000


@pytest.mark.property
class TestSpecProperties:
    """Properties that hold across request shapes."""

    @pytest.mark.parametrize("jupyter", [False, True])
    @pytest.mark.parametrize("rstudio", [False, True])
    @pytest.mark.parametrize("gpu", [False, True])
    def test_request_shape(self, sequential_allocator: PortAllocator, jupyter: bool, rstudio: bool, gpu: bool):
        """Test bindings, exposure and device requests follow the request."""
        builder = ContainerSpecBuilder(port_allocator=sequential_allocator)
        spec = builder.build(
            tag="envd:dev",
            name="myenv",
            build_context="/src/myenv",
            ssh_host_port=2222,
            gpu_enabled=gpu,
            num_gpus=1,
            services=ServiceFlags(jupyter=jupyter, rstudio=rstudio),
        )

        assert len(spec.port_bindings) == 1 + jupyter + rstudio
        assert len(set(spec.host_ports())) == len(spec.host_ports())
        assert all(b.host_ip == "127.0.0.1" for b in spec.port_bindings)
        assert (8888 in spec.exposed_ports) == jupyter
        assert (8787 in spec.exposed_ports) == rstudio
        assert len(spec.device_requests) == (1 if gpu else 0)
        assert spec.mounts[-1].target == spec.working_dir

    @pytest.mark.parametrize("num_gpus", [0, 1, 2, 8])
    def test_gpu_count_matches_request(self, sequential_allocator: PortAllocator, num_gpus: int):
        """Test any non-negative count yields one request with that count."""
        builder = ContainerSpecBuilder(port_allocator=sequential_allocator)
        spec = builder.build(
            tag="img", name="c1", build_context="/proj", ssh_host_port=2222, gpu_enabled=True, num_gpus=num_gpus
        )
        (request,) = spec.device_requests
        assert request.count == num_gpus
        assert len(request.capabilities) == 8

    def test_end_to_end_build(self, sequential_allocator: PortAllocator):
        """Test the reference build with one user mount and no services."""
        builder = ContainerSpecBuilder(port_allocator=sequential_allocator)
        spec = builder.build(
            tag="img",
            name="c1",
            build_context="/proj",
            gpu_enabled=False,
            num_gpus=0,
            ssh_host_port=2222,
            services=ServiceFlags(),
            mount_options=["/host/data:/data"],
        )

        assert spec.working_dir == "/home/envd/proj"
        assert spec.mounts == [
            MountSpec(source="/host/data", target="/data"),
            MountSpec(source="/proj", target="/home/envd/proj"),
        ]
        assert [(b.container_port, b.host_ip, b.host_port) for b in spec.port_bindings] == [(2222, "127.0.0.1", 2222)]
        assert spec.device_requests == []
        assert spec.exposed_ports == set()

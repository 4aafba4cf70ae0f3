from cluster.executor.kubectl_executor import KubectlExecutor
from cluster.executor.local_executor import LocalExecutor
from cluster.executor.ssh_executor import SSHExecutor
from cluster.node_pool import KubectlNodePool, StaticNodePool


class CommandRouter:
    """
    Picks the executor and node pool for the configured transport:
    kubectl → pods of the deployment, ssh → SSH_HOSTS, local → this machine.
    """

    def __init__(self, settings):
        self.settings = settings

    def executor(self):
        s = self.settings
        if s.transport == "kubectl":
            return KubectlExecutor(kubectl=s.kubectl, namespace=s.namespace)
        elif s.transport == "ssh":
            return SSHExecutor(
                user=s.ssh_user,
                password=s.ssh_password,
                key_filename=s.ssh_key_file,
                port=s.ssh_port,
            )
        elif s.transport == "local":
            return LocalExecutor()
        raise ValueError(f"Unknown transport: {s.transport}")

    def node_pool(self, config):
        """config is the TestConfig of the definition being run."""
        s = self.settings
        if s.transport == "kubectl":
            return KubectlNodePool(
                selector=config.selector,
                deployment=s.deployment_name,
                kubectl=s.kubectl,
                namespace=s.namespace,
                poll_interval=s.poll_interval,
            )
        elif s.transport == "ssh":
            return StaticNodePool(s.ssh_hosts)
        elif s.transport == "local":
            # Local runs pretend there are exactly as many nodes as the test asks for
            hosts = s.ssh_hosts or [f"local-{i}" for i in range(1, config.nodes + 1)]
            return StaticNodePool(hosts)
        raise ValueError(f"Unknown transport: {s.transport}")

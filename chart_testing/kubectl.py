"""Kubectl adapter backed by the kubectl CLI."""

from __future__ import annotations

import json
import logging
import time

from .errors import ProcessError, ValidationError
from .ports import Kubectl
from .shell import capture, run, succeeds

logger = logging.getLogger(__name__)

NAMESPACE_DELETE_TIMEOUT = "180s"
_NAMES = "jsonpath={.items[*].metadata.name}"


def format_duration(seconds: float) -> str:
    """Render seconds the way kubectl's --request-timeout expects (e.g. "30s")."""
    return f"{int(seconds)}s" if float(seconds).is_integer() else f"{seconds}s"


class ShellKubectl(Kubectl):
    def __init__(self, timeout: float = 30.0, executable: str = "kubectl") -> None:
        self._kubectl = executable
        self._timeout = f"--request-timeout={format_duration(timeout)}"

    def _run(self, *args: str) -> None:
        run(self._kubectl, self._timeout, *args)

    def _capture(self, *args: str, stdin: str | None = None) -> str:
        return capture(self._kubectl, self._timeout, *args, stdin=stdin)

    def create_namespace(self, namespace: str) -> None:
        print(f"Creating namespace {namespace!r}...")
        self._run("create", "namespace", namespace)

    def delete_namespace(self, namespace: str) -> None:
        print(f"Deleting namespace {namespace!r}...")
        try:
            self._run("delete", "namespace", namespace, "--timeout", NAMESPACE_DELETE_TIMEOUT)
        except ProcessError:
            print(f"Namespace {namespace!r} did not terminate after {NAMESPACE_DELETE_TIMEOUT}.")

        if not self._namespace_exists(namespace):
            return

        print("Force-deleting everything...")
        try:
            self._run(
                "delete", "all", "--namespace", namespace, "--all",
                "--force", "--grace-period=0",
            )
        except ProcessError as err:
            logger.warning("Error deleting everything in namespace %r: %s", namespace, err)

        # Give the API server time to process the deletions
        time.sleep(5)

        if self._namespace_exists(namespace):
            try:
                self._force_namespace_deletion(namespace)
            except (ProcessError, ValueError) as err:
                logger.warning("Error force deleting namespace %r: %s", namespace, err)

    def _force_namespace_deletion(self, namespace: str) -> None:
        """Strip finalizers so a namespace stuck in Terminating can go away."""
        payload = json.loads(self._capture("get", "namespace", namespace, "--output=json"))
        payload["spec"] = {}
        print(f"Removing finalizers from namespace {namespace!r}...")
        self._capture(
            "replace", "--raw", f"/api/v1/namespaces/{namespace}/finalize", "-f", "-",
            stdin=json.dumps(payload),
        )

        time.sleep(5)
        if not self._namespace_exists(namespace):
            return

        print(f"Force-deleting namespace {namespace!r}...")
        self._run(
            "delete", "namespace", namespace, "--force", "--grace-period=0",
            "--ignore-not-found=true",
        )

    def _namespace_exists(self, namespace: str) -> bool:
        if succeeds(self._kubectl, self._timeout, "get", "namespace", namespace):
            return True
        print(f"Namespace {namespace!r} terminated.")
        return False

    def wait_for_deployments(self, namespace: str, selector: str) -> None:
        output = self._capture(
            "get", "deployments", "--namespace", namespace,
            "--selector", selector, "--output", _NAMES,
        )
        for deployment in output.split():
            deployment = deployment.strip("'")
            self._run("rollout", "status", "deployment", deployment, "--namespace", namespace)

            # 'rollout status' exits zero on some failed rollouts; double-check
            unavailable = self._capture(
                "get", "deployment", deployment, "--namespace", namespace,
                "--output", "jsonpath={.status.unavailableReplicas}",
            )
            if unavailable not in ("", "0"):
                raise ValidationError(
                    f"deployment {deployment!r}: {unavailable} replicas unavailable"
                )

    def get_pods(self, namespace: str, selector: str) -> list[str]:
        output = self._capture(
            "get", "pods", "--no-headers", "--namespace", namespace,
            "--selector", selector, "--output", _NAMES,
        )
        return output.split()

    def get_events(self, namespace: str) -> None:
        self._run("get", "events", "--output", "wide", "--namespace", namespace)

    def describe_pod(self, namespace: str, pod: str) -> None:
        self._run("describe", "pod", pod, "--namespace", namespace)

    def logs(self, namespace: str, pod: str, container: str) -> None:
        self._run("logs", pod, "--namespace", namespace, "--container", container)

    def get_init_containers(self, namespace: str, pod: str) -> list[str]:
        return self._containers(namespace, pod, "initContainers")

    def get_containers(self, namespace: str, pod: str) -> list[str]:
        return self._containers(namespace, pod, "containers")

    def _containers(self, namespace: str, pod: str, kind: str) -> list[str]:
        output = self._capture(
            "get", "pods", pod, "--no-headers", "--namespace", namespace,
            "--output", f"jsonpath={{.spec.{kind}[*].name}}",
        )
        return output.split()

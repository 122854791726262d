"""Engine error model.

Every failure surfaced by the engine is an :class:`EngineError` attributable
to exactly one :class:`Scope`. A failing external tool invocation is first
captured as a :class:`CommandError` and wrapped at the call site.
"""

from dataclasses import dataclass
from enum import Enum

from envdock.redact import redact_secrets

_DETAILS_TAIL_LINES = 40


class ErrorCause(Enum):
    INTERNAL = "internal"
    USER = "user"


class ErrorTag(Enum):
    UNKNOWN = "unknown"
    CONFIG = "config"
    TEMPLATE_RENDER = "template_render"
    HELM_CHART_INSTALL = "helm_chart_install"
    HELM_CHART_UNINSTALL = "helm_chart_uninstall"
    HELM_HISTORY = "helm_history"
    HELM_VALUES_FILE_NOT_FOUND = "helm_values_file_not_found"
    HELM_NO_SUCCESSFUL_REVISION = "helm_no_successful_revision"
    TERRAFORM = "terraform"
    K8S_CREATE_NAMESPACE = "k8s_create_namespace"
    K8S_DELETE_NAMESPACE = "k8s_delete_namespace"
    K8S_SCALE = "k8s_scale"
    K8S_GET_PODS = "k8s_get_pods"
    K8S_DELETE_SECRET = "k8s_delete_secret"
    SERVICE_NOT_READY = "service_not_ready"
    UNSUPPORTED_ACTION = "unsupported_action"
    TASK_CANCELLATION_REQUESTED = "task_cancellation_requested"
    TASK_TIMEOUT = "task_timeout"


class ScopeKind(Enum):
    ENGINE = "engine"
    CLOUD_PROVIDER = "cloud_provider"
    KUBERNETES = "kubernetes"
    ENVIRONMENT = "environment"
    APPLICATION = "application"
    CONTAINER = "container"
    ROUTER = "router"
    DATABASE = "database"
    INFRASTRUCTURE = "infrastructure"


@dataclass(frozen=True)
class Scope:
    """Subsystem or service instance an error or progress message belongs to."""

    kind: ScopeKind
    id: str | None = None
    name: str | None = None

    @classmethod
    def engine(cls) -> "Scope":
        return cls(ScopeKind.ENGINE)

    @classmethod
    def kubernetes(cls, cluster_id: str | None = None) -> "Scope":
        return cls(ScopeKind.KUBERNETES, id=cluster_id)

    @classmethod
    def environment(cls, environment_id: str) -> "Scope":
        return cls(ScopeKind.ENVIRONMENT, id=environment_id)

    def __str__(self):
        label = self.name or self.id
        return f"{self.kind.value} {label}" if label else self.kind.value


class CommandError(Exception):
    """A single external command failed.

    ``message_safe`` may be shown to users; ``full_details`` holds the tail of
    the tool output. Both are passed through secret redaction.
    """

    def __init__(self, message: str, full_details: str | None = None, command: str | None = None, hint: str | None = None):
        self.message_safe = redact_secrets(message)
        self.full_details = redact_secrets(full_details) if full_details else None
        self.command = redact_secrets(command) if command else None
        self.hint = hint
        super().__init__(self.message_safe)

    @classmethod
    def from_result(cls, command, returncode: int, stdout: str, stderr: str, hint: str | None = None) -> "CommandError":
        """Build an error from a finished process result."""
        command_str = command if isinstance(command, str) else " ".join(command)
        output = (stderr or stdout or "").strip()
        tail = "\n".join(output.splitlines()[-_DETAILS_TAIL_LINES:]) if output else None
        program = command_str.split(" ", 1)[0] if command_str else "command"
        return cls(
            f"`{program}` exited with code {returncode}",
            full_details=tail,
            command=command_str,
            hint=hint,
        )


class EngineError(Exception):
    """Scoped engine failure carrying a user-facing message."""

    def __init__(
        self,
        tag: ErrorTag,
        scope: Scope,
        user_message: str,
        execution_id: str = "",
        cause: ErrorCause = ErrorCause.INTERNAL,
        message: str | None = None,
        underlying: CommandError | None = None,
        hint: str | None = None,
    ):
        self.tag = tag
        self.scope = scope
        self.user_message = redact_secrets(user_message)
        self.execution_id = execution_id
        self.cause = cause
        self.message = redact_secrets(message) if message else None
        self.underlying = underlying
        self.hint = hint or (underlying.hint if underlying else None)
        self.debug_info = None
        super().__init__(self.user_message)

    def __str__(self):
        text = f"[{self.scope}] {self.user_message}"
        if self.message:
            text += f": {self.message}"
        if self.underlying is not None:
            text += f" ({self.underlying.message_safe})"
        return text

    def attach_debug_info(self, debug_info) -> "EngineError":
        self.debug_info = debug_info
        return self

    # ── constructors ────────────────────────────────────────────────

    @classmethod
    def new_config_error(cls, message: str) -> "EngineError":
        return cls(ErrorTag.CONFIG, Scope.engine(), "Invalid configuration", cause=ErrorCause.USER, message=message)

    @classmethod
    def new_template_error(cls, scope: Scope, execution_id: str, template_dir: str, message: str) -> "EngineError":
        return cls(
            ErrorTag.TEMPLATE_RENDER,
            scope,
            f"Unable to render templates from `{template_dir}`",
            execution_id=execution_id,
            message=message,
        )

    @classmethod
    def new_helm_error(cls, scope: Scope, execution_id: str, release: str, error: CommandError) -> "EngineError":
        return cls(
            ErrorTag.HELM_CHART_INSTALL,
            scope,
            f"Helm chart `{release}` failed to deploy",
            execution_id=execution_id,
            underlying=error,
        )

    @classmethod
    def new_helm_uninstall_error(cls, scope: Scope, execution_id: str, release: str, error: CommandError) -> "EngineError":
        return cls(
            ErrorTag.HELM_CHART_UNINSTALL,
            scope,
            f"Helm chart `{release}` failed to uninstall",
            execution_id=execution_id,
            underlying=error,
        )

    @classmethod
    def new_helm_history_error(cls, scope: Scope, execution_id: str, release: str, error: CommandError) -> "EngineError":
        return cls(
            ErrorTag.HELM_HISTORY,
            scope,
            f"Unable to read history of Helm release `{release}`",
            execution_id=execution_id,
            underlying=error,
        )

    @classmethod
    def new_values_file_not_found(cls, scope: Scope, execution_id: str, path: str) -> "EngineError":
        return cls(
            ErrorTag.HELM_VALUES_FILE_NOT_FOUND,
            scope,
            f"Helm values file `{path}` does not exist",
            execution_id=execution_id,
        )

    @classmethod
    def new_no_successful_revision(cls, scope: Scope, execution_id: str, release: str, user_message: str) -> "EngineError":
        return cls(
            ErrorTag.HELM_NO_SUCCESSFUL_REVISION,
            scope,
            user_message,
            execution_id=execution_id,
            cause=ErrorCause.USER,
            message=f"No succeeded revision found for chart `{release}`",
        )

    @classmethod
    def new_terraform_error(cls, scope: Scope, execution_id: str, error: CommandError) -> "EngineError":
        return cls(
            ErrorTag.TERRAFORM,
            scope,
            "Error while performing Terraform command",
            execution_id=execution_id,
            underlying=error,
        )

    @classmethod
    def new_k8s_create_namespace(cls, scope: Scope, execution_id: str, namespace: str, error: CommandError) -> "EngineError":
        return cls(
            ErrorTag.K8S_CREATE_NAMESPACE,
            scope,
            f"Can't create namespace `{namespace}`",
            execution_id=execution_id,
            underlying=error,
        )

    @classmethod
    def new_k8s_delete_namespace(cls, scope: Scope, execution_id: str, namespace: str, error: CommandError) -> "EngineError":
        return cls(
            ErrorTag.K8S_DELETE_NAMESPACE,
            scope,
            f"Can't delete namespace `{namespace}`",
            execution_id=execution_id,
            underlying=error,
        )

    @classmethod
    def new_k8s_scale(cls, scope: Scope, execution_id: str, selector: str, replicas: int, error: CommandError) -> "EngineError":
        return cls(
            ErrorTag.K8S_SCALE,
            scope,
            f"Can't scale workload `{selector}` to {replicas} replica(s)",
            execution_id=execution_id,
            underlying=error,
        )

    @classmethod
    def new_k8s_get_pods(cls, scope: Scope, execution_id: str, selector: str, error: CommandError) -> "EngineError":
        return cls(
            ErrorTag.K8S_GET_PODS,
            scope,
            f"Can't get pods for selector `{selector}`",
            execution_id=execution_id,
            underlying=error,
        )

    @classmethod
    def new_k8s_delete_secret(cls, scope: Scope, execution_id: str, secret: str, error: CommandError) -> "EngineError":
        return cls(
            ErrorTag.K8S_DELETE_SECRET,
            scope,
            f"Can't delete secret `{secret}`",
            execution_id=execution_id,
            underlying=error,
        )

    @classmethod
    def new_service_not_ready(
        cls,
        scope: Scope,
        execution_id: str,
        what: str,
        reason: str | None = None,
        cause: ErrorCause = ErrorCause.INTERNAL,
        hint: str | None = None,
    ) -> "EngineError":
        return cls(
            ErrorTag.SERVICE_NOT_READY,
            scope,
            f"{what} still not ready after several retries",
            execution_id=execution_id,
            cause=cause,
            message=reason or None,
            hint=hint,
        )

    @classmethod
    def new_unsupported_action(cls, scope: Scope, execution_id: str, action, kind) -> "EngineError":
        return cls(
            ErrorTag.UNSUPPORTED_ACTION,
            scope,
            f"Action `{action.value}` is not supported for {kind.value} services",
            execution_id=execution_id,
            cause=ErrorCause.USER,
        )

    @classmethod
    def new_task_cancellation_requested(cls, scope: Scope, execution_id: str) -> "EngineError":
        return cls(
            ErrorTag.TASK_CANCELLATION_REQUESTED,
            scope,
            "Task cancellation requested",
            execution_id=execution_id,
            cause=ErrorCause.USER,
        )

    @classmethod
    def new_task_timeout(cls, scope: Scope, execution_id: str, timeout: float) -> "EngineError":
        return cls(
            ErrorTag.TASK_TIMEOUT,
            scope,
            f"Task did not complete within {timeout:g}s",
            execution_id=execution_id,
        )

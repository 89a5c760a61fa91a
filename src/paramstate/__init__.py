"""
Commit engine for remotely computed parameters.

Many independent UI controls edit a shared set of parameters belonging to one
or more backend sessions. paramstate turns those scattered, debounced edits
into ordered commit batches (at most one in flight per namespace), optionally
gated by an explicit accept/reject step and amended by a pre-execution hook,
and records every commit in a linear undo/redo journal synchronized with host
navigation.

Key Features:
- Parameter cells with an atomic (ui_value, exec_value, dirty) state
- One change batch per namespace, resolved by accept() or reject()
- Backend session executor with default exports and rollback on failure
- Generic parameter sets with custom executors (bridge pattern)
- History journal with three-tier restore for back/forward navigation
- Debounced controls feeding cells

Quick Start:
    >>> from paramstate import NamespaceDirectory, ParameterControl
    >>>
    >>> directory = NamespaceDirectory(navigator=browser_history)
    >>> directory.attach_session(session, accept_reject_mode=False)
    >>> directory.seed_history()
    >>>
    >>> control = ParameterControl(directory, session.id, 'Width')
    >>> control.handle_change('20')   # committed after the debounce window
    >>> await control.wait_idle()

Accept/Reject Mode:
    >>> directory.attach_session(session, accept_reject_mode=True)
    >>> control.handle_change('20')   # queued, cell is dirty
    >>> await directory.accept_all_changes()   # or directory.reject_all_changes()

Modules:
    - definitions: Parameter, export and generic parameter definitions
    - validation: Type validators for generic parameters
    - state_cell: Parameter and export cells
    - change_batch: Pending-edit aggregate and commit protocol
    - executor: Session executor, bridge executor
    - hooks: Pre-execution hook and default export registries
    - directory: Namespace directory (attach/detach, batches, history replay)
    - history: History entries and journal
    - control: Debounced parameter control
    - session: Collaborator protocols (session, navigator, notifier)
    - config: Configuration
    - errors: Exception hierarchy
"""

# Configuration
from paramstate.config import (
    ParamStateConfig,
    get_default_config,
    set_default_config,
)

# Errors
from paramstate.errors import (
    ParamStateError,
    ValidationError,
    CommitError,
    BatchRejectedError,
    ParameterNotFoundError,
    HistoryError,
    ConfigurationError,
)

# Definitions
from paramstate.definitions import (
    ParameterType,
    Visualization,
    ParameterDefinition,
    ExportDefinition,
    GenericParameterDefinition,
)

# Validation
from paramstate.validation import (
    validate_parameter_value,
    make_validator,
)

# Cells and batches
from paramstate.state_cell import (
    ParameterState,
    ParameterCell,
    ExportCell,
)
from paramstate.change_batch import ChangeBatch

# Executors and registries
from paramstate.executor import (
    Executor,
    SessionExecutor,
    BridgeExecutor,
    bridge_hook,
)
from paramstate.hooks import (
    PreExecutionHookRegistry,
    DefaultExportRegistry,
)

# History
from paramstate.history import (
    HistoryEntry,
    HistoryJournal,
    RestoreTier,
    RestoreResult,
)

# Directory and controls
from paramstate.directory import NamespaceDirectory
from paramstate.control import ParameterControl

# Collaborators
from paramstate.session import (
    RemoteParameter,
    RemoteExport,
    Session,
    Navigator,
    Notifier,
    LoggingNotifier,
)

__all__ = [
    # Configuration
    'ParamStateConfig',
    'get_default_config',
    'set_default_config',
    # Errors
    'ParamStateError',
    'ValidationError',
    'CommitError',
    'BatchRejectedError',
    'ParameterNotFoundError',
    'HistoryError',
    'ConfigurationError',
    # Definitions
    'ParameterType',
    'Visualization',
    'ParameterDefinition',
    'ExportDefinition',
    'GenericParameterDefinition',
    # Validation
    'validate_parameter_value',
    'make_validator',
    # Cells and batches
    'ParameterState',
    'ParameterCell',
    'ExportCell',
    'ChangeBatch',
    # Executors and registries
    'Executor',
    'SessionExecutor',
    'BridgeExecutor',
    'bridge_hook',
    'PreExecutionHookRegistry',
    'DefaultExportRegistry',
    # History
    'HistoryEntry',
    'HistoryJournal',
    'RestoreTier',
    'RestoreResult',
    # Directory and controls
    'NamespaceDirectory',
    'ParameterControl',
    # Collaborators
    'RemoteParameter',
    'RemoteExport',
    'Session',
    'Navigator',
    'Notifier',
    'LoggingNotifier',
]

__version__ = '0.1.0'

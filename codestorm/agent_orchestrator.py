"""Agent orchestrator coordinating the role pipeline over project files."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from codestorm.models import (
    AgentResult,
    AgentTask,
    AgentType,
    ChatMessage,
    FileItem,
    ProgressEvent,
    ProjectPlan,
    TaskStatus,
)
from codestorm.orchestration.classifier import Intent, IntentClassifier, IntentContext
from codestorm.providers.completion_gateway import CompletionCapability, CompletionGateway
from codestorm.providers.model_clients import ModelCapabilityRouter
from codestorm.roles import (
    CodeCorrector,
    CodeGenerator,
    CodeModifier,
    CodeSplitter,
    DesignArchitect,
    FileObserver,
    FileSynchronizer,
    Planner,
)
from codestorm.roles.design_architect import DesignMode, DesignOutcome
from codestorm.roles.observer import ObserverState
from codestorm.roles.splitter import needs_segmentation
from codestorm.roles.synchronizer import files_to_commands
from codestorm.utils.config import load_config
from codestorm.utils.errors import (
    CodestormError,
    ErrorCode,
    create_input_error,
    create_orchestration_error,
    get_error_handler,
    handle_error,
)
from codestorm.utils.ids import generate_task_id, generate_unique_id
from codestorm.utils.reconciliation import find_file, find_main_files, normalize_path, reconcile

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressEvent], None]
ChatListener = Callable[[ChatMessage], None]


@dataclass
class InstructionOutcome:
    intent: str
    result: AgentResult
    files: List[FileItem]
    tasks: List[AgentTask] = field(default_factory=list)


@dataclass
class ProjectResult:
    plan: ProjectPlan
    design: Optional[DesignOutcome] = None
    generated_files: List[FileItem] = field(default_factory=list)


class AgentOrchestrator:
    """Route instructions to roles and own the authoritative file list.

    Instructions are serialized with an ``asyncio.Lock``; every role output
    goes through the synchronizer (and so through reconciliation) before it
    replaces the file list. Readers only ever get snapshots.
    """

    def __init__(
        self,
        capability: Optional[CompletionCapability] = None,
        gateway: Optional[CompletionGateway] = None,
        config: Optional[Dict[str, Any]] = None,
        config_path: Optional[str] = None,
        on_progress: Optional[ProgressListener] = None,
        on_chat: Optional[ChatListener] = None,
        files: Optional[Iterable[FileItem]] = None,
    ) -> None:
        self._error_handler = get_error_handler()
        try:
            self.config = config if config is not None else load_config(config_path)
            if gateway is None:
                if capability is None:
                    capability = ModelCapabilityRouter.from_config(self.config)
                gateway = CompletionGateway.from_config(capability, self.config)
            self.gateway = gateway
            self.classifier = IntentClassifier.from_config(self.config.get("classifier"))

            self.on_progress = on_progress
            self.on_chat = on_chat
            self._lock = asyncio.Lock()
            self._files: List[FileItem] = reconcile(files or [])
            self._tasks: List[AgentTask] = []
            self._chat: List[ChatMessage] = []
            self._observer_state: Optional[ObserverState] = None

            self._init_roles()
            logger.info("AgentOrchestrator initialized with %d file(s)", len(self._files))
        except CodestormError:
            raise
        except Exception as exc:
            handle_error(
                create_orchestration_error(
                    f"Failed to initialize AgentOrchestrator: {exc}",
                    ErrorCode.ORCHESTRATION_INIT_FAILED,
                    context={"config_path": config_path},
                    cause=exc,
                )
            )
            raise

    def _init_roles(self) -> None:
        shared = {"config": self.config, "progress": self._emit_progress}
        self.planner_role = Planner(self.gateway, **shared)
        self.design_role = DesignArchitect(self.gateway, **shared)
        self.coder_role = CodeGenerator(self.gateway, **shared)
        self.modifier_role = CodeModifier(self.gateway, **shared)
        self.corrector_role = CodeCorrector(self.gateway, **shared)
        self.splitter_role = CodeSplitter(self.gateway, **shared)
        self.observer_role = FileObserver(self.gateway, **shared)
        self.synchronizer_role = FileSynchronizer(self.gateway, **shared)

    # ------------------------------------------------------------- snapshots
    @property
    def files(self) -> List[FileItem]:
        return list(self._files)

    @property
    def tasks(self) -> List[AgentTask]:
        return list(self._tasks)

    @property
    def chat_history(self) -> List[ChatMessage]:
        return list(self._chat)

    @property
    def observer_state(self) -> Optional[ObserverState]:
        return self._observer_state

    # ---------------------------------------------------------------- events
    def _emit_progress(self, event: ProgressEvent) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(event)
        except Exception:
            logger.exception("Progress listener failed")

    def _progress(self, stage: str, percent: float, message: str, agent_name: Optional[str] = None) -> None:
        self._emit_progress(ProgressEvent(stage=stage, percent=percent, message=message, agent_name=agent_name))

    def _post_chat(self, content: str, type: str = "text", sender: str = "ai") -> ChatMessage:
        message = ChatMessage(id=generate_unique_id("msg"), sender=sender, content=content, type=type)
        self._chat.append(message)
        if self.on_chat is not None:
            try:
                self.on_chat(message)
            except Exception:
                logger.exception("Chat listener failed")
        return message

    # ----------------------------------------------------------------- tasks
    async def _run_task(
        self,
        agent_type: AgentType,
        role: Any,
        instruction: str,
        context: Optional[Dict[str, Any]] = None,
        plan: Optional[ProjectPlan] = None,
    ) -> Tuple[AgentTask, AgentResult]:
        task = AgentTask(
            id=generate_task_id(),
            type=agent_type,
            instruction=instruction,
            plan=plan,
            context=dict(context or {}),
        )
        self._tasks.append(task)
        task.transition(TaskStatus.WORKING)
        logger.debug("Dispatching %s task %s", agent_type.value, task.id)

        result = await role.execute(task)
        if result.success:
            task.result = result.data
            task.transition(TaskStatus.COMPLETED)
        else:
            task.error = result.error
            task.transition(TaskStatus.FAILED)
            handle_error(
                create_orchestration_error(
                    f"{role.name} failed: {result.error}",
                    ErrorCode.ORCHESTRATION_TASK_FAILED,
                    context={"task_id": task.id, "agent": agent_type.value},
                )
            )
            self._post_chat(f"Error en {role.name}: {result.error}", type="error")
        return task, result

    async def _sync(self, produced: List[FileItem]) -> None:
        """Merge role output into the file list through the synchronizer."""
        commands = files_to_commands(self._files, produced)
        if not commands:
            return
        _, result = await self._run_task(
            AgentType.FILE_SYNCHRONIZER,
            self.synchronizer_role,
            f"Sincronizar {len(commands)} archivo(s)",
            {"files": self._files, "commands": commands},
        )
        if result.success:
            self._files = result.data.files
            for line in result.data.terminal_commands:
                logger.debug("sync: %s", line)

    # ------------------------------------------------------------ public API
    async def process_instruction(
        self,
        instruction: str,
        current_files: Optional[Iterable[FileItem]] = None,
        selected_file_id: Optional[str] = None,
    ) -> InstructionOutcome:
        """Classify ``instruction`` and run the matching pipeline."""
        async with self._lock:
            first_task = len(self._tasks)
            if current_files is not None:
                self._files = reconcile(current_files)
            intent, result = await self._dispatch(instruction, selected_file_id)
            return InstructionOutcome(
                intent=intent,
                result=result,
                files=self.files,
                tasks=self._tasks[first_task:],
            )

    async def _dispatch(self, instruction: str, selected_file_id: Optional[str]) -> Tuple[str, AgentResult]:
        if not instruction or not instruction.strip():
            details = handle_error(
                create_orchestration_error(
                    "Empty instruction",
                    ErrorCode.INVALID_INSTRUCTION,
                    user_message="La instrucción está vacía",
                )
            )
            self._post_chat(details.user_message, type="error")
            return Intent.CHAT, AgentResult.fail(details.user_message)

        self._post_chat(instruction, sender="user")
        intent = self.classifier.classify(
            IntentContext(
                instruction=instruction,
                has_files=bool(self._files),
                has_selection=selected_file_id is not None,
            )
        )
        logger.info("Instruction routed to %s", intent)

        snapshot = self._files
        try:
            if intent == Intent.CREATE_PROJECT:
                result = await self._generate_project(instruction)
            elif intent == Intent.MODIFY_FILE:
                result = await self._modify_file(selected_file_id, instruction)
            elif intent == Intent.CHANGE_STYLES:
                result = await self._change_styles(instruction)
            elif intent == Intent.CORRECT_CODE:
                result = await self._correct_file(selected_file_id, instruction)
            else:
                result = await self._answer_chat(instruction)
        except Exception as exc:
            # Files merged before the failure stay as they were
            self._files = snapshot
            details = handle_error(
                create_orchestration_error(
                    f"Pipeline for {intent} failed: {exc}",
                    ErrorCode.ORCHESTRATION_PIPELINE_FAILED,
                    context={"intent": intent},
                    cause=exc,
                )
            )
            self._post_chat(f"Error al procesar la instrucción: {exc}", type="error")
            result = AgentResult.fail(details.message)
        return intent, result

    async def generate_project(self, instruction: str) -> AgentResult:
        async with self._lock:
            return await self._generate_project(instruction)

    async def modify_file(self, file_id: Optional[str], instruction: str) -> AgentResult:
        async with self._lock:
            return await self._modify_file(file_id, instruction)

    async def change_styles(self, instruction: str) -> AgentResult:
        async with self._lock:
            return await self._change_styles(instruction)

    async def correct_file(self, file_id: str, instruction: str = "Corrige el código") -> AgentResult:
        async with self._lock:
            return await self._correct_file(file_id, instruction)

    async def observe_files(self) -> AgentResult:
        async with self._lock:
            return await self._observe()

    async def apply_correction(self, file_id: str, corrected_code: str) -> AgentResult:
        """Write reviewed corrector output back to a file."""
        async with self._lock:
            target = find_file(self._files, file_id)
            if target is None:
                details = handle_error(
                    create_input_error(
                        f"Unknown file id {file_id}",
                        ErrorCode.FILE_NOT_FOUND,
                        user_message=f"No se encontró el archivo con ID {file_id}",
                    )
                )
                return AgentResult.fail(details.user_message)
            produced = replace(target, content=corrected_code)
            await self._sync([produced])
            return AgentResult.ok(find_file(self._files, file_id))

    # ------------------------------------------------------------- pipelines
    async def _generate_project(self, instruction: str) -> AgentResult:
        self._progress("planning", 5, "Planificando el proyecto", self.planner_role.name)
        _, planned = await self._run_task(AgentType.PLANNER, self.planner_role, instruction)
        if not planned.success:
            return planned
        plan: ProjectPlan = planned.data
        self._post_chat(f"Plan generado: {plan.name} ({len(plan.files)} archivos)", type="notification")

        self._progress("design", 30, "Diseñando la interfaz", self.design_role.name)
        _, designed = await self._run_task(
            AgentType.DESIGN_ARCHITECT,
            self.design_role,
            f"Generar propuesta de diseño para: {instruction}",
            {"user_instruction": instruction, "files": self._files},
            plan=plan,
        )
        design: Optional[DesignOutcome] = designed.data if designed.success else None
        produced: List[FileItem] = list(design.files) if design else []
        if design is not None:
            self._post_chat("Propuesta de diseño generada", type="success")

        self._progress("generating", 60, "Generando código", self.coder_role.name)
        skip = [normalize_path(item.path) for item in produced]
        if any(normalize_path(item.path) not in skip for item in plan.files):
            _, coded = await self._run_task(
                AgentType.CODE_GENERATOR,
                self.coder_role,
                instruction,
                {"skip_paths": skip},
                plan=plan,
            )
            if coded.success:
                produced.extend(coded.data)

        if not produced:
            return AgentResult.fail("No se generó ningún archivo para el proyecto")

        if any(needs_segmentation(item.content) for item in produced):
            self._progress("splitting", 80, "Separando archivos combinados", self.splitter_role.name)
            _, split = await self._run_task(
                AgentType.CODE_SPLITTER,
                self.splitter_role,
                f"Segmentar {len(produced)} archivo(s) generados",
                {"files": produced},
            )
            if split.success:
                produced = split.data

        self._progress("syncing", 90, "Sincronizando archivos")
        await self._sync(produced)
        await self._observe()
        self._progress("done", 100, "Proyecto generado")
        self._post_chat(f"Proyecto generado con {len(self._files)} archivos", type="success")
        return AgentResult.ok(ProjectResult(plan=plan, design=design, generated_files=produced))

    def _resolve_target(self, instruction: str) -> Optional[FileItem]:
        lowered = instruction.lower()
        for item in self._files:
            if item.name and item.name.lower() in lowered:
                return item
        main = find_main_files(self._files)
        return main["html"] or (self._files[0] if self._files else None)

    async def _modify_file(self, file_id: Optional[str], instruction: str) -> AgentResult:
        target = find_file(self._files, file_id) if file_id else self._resolve_target(instruction)
        _, result = await self._run_task(
            AgentType.CODE_MODIFIER,
            self.modifier_role,
            instruction,
            {"file": target, "file_id": file_id},
        )
        if result.success:
            await self._sync([result.data.modified_file])
            self._post_chat(f"Archivo {result.data.modified_file.path} modificado", type="success")
        return result

    async def _change_styles(self, instruction: str) -> AgentResult:
        _, result = await self._run_task(
            AgentType.DESIGN_ARCHITECT,
            self.design_role,
            instruction,
            {"user_instruction": instruction, "design_mode": DesignMode.COLOR_CHANGE, "files": self._files},
        )
        if result.success:
            await self._sync(result.data.files)
            self._post_chat(f"Paleta {result.data.palette.name} aplicada", type="success")
        return result

    async def _correct_file(self, file_id: Optional[str], instruction: str) -> AgentResult:
        target = find_file(self._files, file_id) if file_id else None
        _, result = await self._run_task(
            AgentType.CODE_CORRECTOR,
            self.corrector_role,
            instruction,
            {"file": target, "file_id": file_id},
        )
        if result.success:
            report = result.data
            self._post_chat(
                f"Análisis completado: {len(report.issues)} problema(s), {len(report.changes)} cambio(s) propuestos",
                type="notification",
            )
        return result

    async def _observe(self) -> AgentResult:
        _, result = await self._run_task(
            AgentType.FILE_OBSERVER,
            self.observer_role,
            "Observar archivos del proyecto",
            {"files": self._files, "observer_state": self._observer_state},
        )
        if result.success:
            self._observer_state = result.data
        return result

    async def _answer_chat(self, instruction: str) -> AgentResult:
        prompt = "\n".join(
            [
                "Eres CODESTORM, un asistente de desarrollo. Responde de forma breve y útil,",
                "en el idioma del usuario.",
                "",
                f"Archivos del proyecto: {', '.join(item.path for item in self._files) or 'ninguno'}",
                "",
                f"Mensaje del usuario: {instruction}",
            ]
        )
        envelope = await self.gateway.complete(prompt)
        if not envelope.ok:
            self._post_chat(f"No se pudo obtener respuesta: {envelope.error}", type="error")
            return AgentResult.fail(envelope.error or "Completion failed")
        self._post_chat(envelope.content or "")
        return AgentResult.ok(envelope.content)

    # ------------------------------------------------------------ diagnostics
    def get_error_summary(self) -> Dict[str, Any]:
        return self._error_handler.get_error_summary()

    def reset_error_history(self) -> None:
        """Reset the error history for clean state (useful for testing)."""
        self._error_handler.error_history.clear()
        self._error_handler.error_counts.clear()


__all__ = ["AgentOrchestrator", "InstructionOutcome", "ProjectResult"]

"""Engine composition -- wire every service once at process start."""

from dataclasses import dataclass

from finbuild.clients.llm_client import CompletionGateway
from finbuild.repos.component_repo import PromptComponentRepo
from finbuild.repos.db import PoolFactory, get_pool
from finbuild.repos.performance_repo import PerformanceRepo
from finbuild.repos.project_repo import ProjectRepo
from finbuild.repos.template_repo import TemplateRepo
from finbuild.services.chat.controller import PhaseController
from finbuild.services.chat.generators import BlueprintGenerator, ComponentGenerator
from finbuild.services.chat.intent import IntentClassifier
from finbuild.services.chat.requirements import RequirementsExtractor
from finbuild.services.prompt.performance import PerformanceRecorder
from finbuild.services.prompt.pipeline import PromptInvoker
from finbuild.services.prompt.template_store import TemplateStore


@dataclass
class Engine:
    projects: ProjectRepo
    store: TemplateStore
    recorder: PerformanceRecorder
    gateway: CompletionGateway
    invoker: PromptInvoker
    controller: PhaseController


def build_engine(
    gateway: CompletionGateway | None = None,
    pool_factory: PoolFactory = get_pool,
    *,
    template_repo: TemplateRepo | None = None,
    performance_repo: PerformanceRepo | None = None,
    project_repo: ProjectRepo | None = None,
    component_repo: PromptComponentRepo | None = None,
) -> Engine:
    """Compose the engine.  Every collaborator can be swapped for a fake."""
    projects = project_repo or ProjectRepo(pool_factory)
    store = TemplateStore(
        template_repo or TemplateRepo(pool_factory),
        component_repo or PromptComponentRepo(pool_factory),
    )
    recorder = PerformanceRecorder(performance_repo or PerformanceRepo(pool_factory))
    gateway = gateway or CompletionGateway()
    invoker = PromptInvoker(store, gateway, recorder)
    controller = PhaseController(
        projects=projects,
        invoker=invoker,
        classifier=IntentClassifier(invoker),
        extractor=RequirementsExtractor(invoker),
        blueprint_generator=BlueprintGenerator(invoker),
        component_generator=ComponentGenerator(invoker),
    )
    return Engine(
        projects=projects,
        store=store,
        recorder=recorder,
        gateway=gateway,
        invoker=invoker,
        controller=controller,
    )

"""Built-in prompt templates, seeded at startup.

Seeding only inserts a name that has no stored version yet, so edits made
through the templates API are never overwritten by a restart.
"""

import logging

from finbuild.services.prompt.template_store import TemplateStore

logger = logging.getLogger(__name__)


def _var(name: str, description: str, required: bool = True, type: str = "string") -> dict:
    return {"name": name, "description": description, "type": type, "required": required}


DEFAULT_TEMPLATES: list[dict] = [
    {
        "name": "general_query",
        "category": "general",
        "description": "Answers free-form questions about a project",
        "variables": [
            _var("message", "The user's message"),
            _var("projectName", "Project name", required=False),
            _var("projectDescription", "Project description", required=False),
            _var("projectRequirements", "Detailed requirements", required=False),
            _var("projectTechStack", "Comma-separated technology stack", required=False),
            _var("projectStatus", "Current project status", required=False),
        ],
        "content": (
            "You are an assistant helping a team build financial software.\n\n"
            "PROJECT NAME: {{projectName}}\n"
            "PROJECT DESCRIPTION: {{projectDescription}}\n"
            "PROJECT REQUIREMENTS: {{projectRequirements}}\n"
            "TECH STACK: {{projectTechStack}}\n"
            "CURRENT STATUS: {{projectStatus}}\n\n"
            "USER MESSAGE: \"{{message}}\"\n\n"
            "Answer helpfully and concretely in the context of this project. When the "
            "question concerns trading strategies, financial algorithms or implementation "
            "techniques, go into detail. If you are unsure of something specific, say so "
            "and give general guidance instead."
        ),
    },
    {
        "name": "determine_intent",
        "category": "general",
        "description": "Labels a user message with a single intent keyword",
        "variables": [_var("message", "The user's message")],
        "content": (
            "Classify the intent of the user's message. Reply with exactly ONE of these words:\n"
            "- query: asking a question or looking for information\n"
            "- generate: asking to create or generate something\n"
            "- modify: asking to change or update something\n"
            "- approve: approving or confirming\n"
            "- reject: disapproving or rejecting\n\n"
            "USER MESSAGE: \"{{message}}\"\n\n"
            "Intent:"
        ),
    },
    {
        "name": "extract_requirements",
        "category": "requirements",
        "description": "Extracts structured project requirements from free text",
        "variables": [_var("message", "The user's message")],
        "content": (
            "Extract project requirements from the user's message. The project is "
            "financial trading or fintech software.\n\n"
            "USER MESSAGE: \"{{message}}\"\n\n"
            "Respond with a single JSON object using exactly these keys, with null for "
            "anything the message does not mention:\n"
            "{\n"
            "  \"name\": \"project name\",\n"
            "  \"description\": \"short project description\",\n"
            "  \"requirements\": \"detailed functional requirements\",\n"
            "  \"techStack\": [\"technologies mentioned\"],\n"
            "  \"financialDomain\": \"trading | risk_management | market_data | ...\",\n"
            "  \"tradingVenue\": \"forex | equities | futures | crypto | ...\"\n"
            "}\n\n"
            "Return ONLY the JSON."
        ),
    },
    {
        "name": "blueprint_query",
        "category": "blueprint",
        "description": "Answers questions about the architecture blueprint",
        "variables": [
            _var("message", "The user's question"),
            _var("requirements", "Project requirements", required=False),
            _var("blueprint", "Blueprint as JSON", required=False),
        ],
        "content": (
            "The user has a question about the architecture blueprint of their financial "
            "trading project.\n\n"
            "PROJECT REQUIREMENTS: {{requirements}}\n\n"
            "BLUEPRINT: {{blueprint}}\n\n"
            "USER QUESTION: \"{{message}}\"\n\n"
            "Answer specifically, explaining how the architecture supports the project's "
            "trading functionality and mentioning alternatives where relevant."
        ),
    },
    {
        "name": "blueprint_modify",
        "category": "blueprint",
        "description": "Suggests a blueprint change without applying it",
        "variables": [
            _var("message", "The modification request"),
            _var("requirements", "Project requirements", required=False),
            _var("blueprint", "Blueprint as JSON", required=False),
        ],
        "content": (
            "The user wants to change the architecture blueprint of their financial "
            "trading project.\n\n"
            "CURRENT REQUIREMENTS: {{requirements}}\n\n"
            "CURRENT BLUEPRINT: {{blueprint}}\n\n"
            "MODIFICATION REQUEST: \"{{message}}\"\n\n"
            "Describe how the blueprint should change to accommodate the request, "
            "following good practice for trading systems."
        ),
    },
    {
        "name": "component_query",
        "category": "component",
        "description": "Answers questions about project components",
        "variables": [
            _var("message", "The user's question"),
            _var("blueprint", "Blueprint as JSON", required=False),
            _var("components", "Components as JSON", required=False),
        ],
        "content": (
            "The user has a question about one or more components of their financial "
            "trading project.\n\n"
            "BLUEPRINT: {{blueprint}}\n\n"
            "COMPONENTS: {{components}}\n\n"
            "USER QUESTION: \"{{message}}\"\n\n"
            "Answer in detail, focusing on how the components work together in a "
            "trading context."
        ),
    },
    {
        "name": "generate_blueprint",
        "category": "blueprint",
        "description": "Produces the architecture blueprint as JSON",
        "variables": [
            _var("projectName", "Project name"),
            _var("projectDescription", "Project description"),
            _var("requirements", "Detailed requirements"),
            _var("techStack", "Comma-separated technology stack"),
            _var("financialDomain", "Financial domain", required=False),
            _var("tradingVenue", "Trading venue", required=False),
        ],
        "content": (
            "You are a software architect specialising in trading systems. Design the "
            "architecture for this project.\n\n"
            "Project name: {{projectName}}\n"
            "Description: {{projectDescription}}\n"
            "Financial domain: {{financialDomain}}\n"
            "Trading venue: {{tradingVenue}}\n"
            "Requirements: {{requirements}}\n"
            "Tech stack: {{techStack}}\n\n"
            "Respond with ONLY a JSON object of this shape:\n"
            "{\n"
            "  \"overview\": \"string\",\n"
            "  \"components\": [\n"
            "    {\"name\": \"string\", \"description\": \"string\",\n"
            "     \"dependencies\": [\"names of other components\"],\n"
            "     \"priority\": \"high | medium | low\"}\n"
            "  ],\n"
            "  \"dataModels\": [{\"name\": \"string\", \"fields\": [{\"name\": \"string\", \"type\": \"string\"}]}],\n"
            "  \"apis\": [{\"endpoint\": \"string\", \"method\": \"string\", \"description\": \"string\"}]\n"
            "}"
        ),
    },
    {
        "name": "generate_component",
        "category": "component",
        "description": "Produces the source files of one component as JSON",
        "variables": [
            _var("componentName", "Component name"),
            _var("componentDescription", "Component description", required=False),
            _var("dependencies", "Names of the components it depends on", required=False),
            _var("blueprint", "Blueprint as JSON", required=False),
            _var("techStack", "Comma-separated technology stack", required=False),
        ],
        "content": (
            "Implement the component \"{{componentName}}\" of a financial trading project.\n\n"
            "COMPONENT DESCRIPTION: {{componentDescription}}\n"
            "DEPENDS ON: {{dependencies}}\n"
            "TECH STACK: {{techStack}}\n\n"
            "BLUEPRINT: {{blueprint}}\n\n"
            "Respond with ONLY a JSON object of this shape:\n"
            "{\n"
            "  \"summary\": \"one paragraph describing what was built\",\n"
            "  \"files\": [{\"path\": \"relative/path.ext\", \"content\": \"file contents\"}]\n"
            "}"
        ),
    },
]


async def seed_default_templates(store: TemplateStore) -> list[str]:
    """Insert every default whose name has no stored version.  Returns the names added."""
    added = []
    for spec in DEFAULT_TEMPLATES:
        if await store.get_template(spec["name"]) is not None:
            continue
        await store.create_template({**spec, "created_by": "system"})
        added.append(spec["name"])
    if added:
        logger.info("Seeded %d default prompt templates: %s", len(added), ", ".join(added))
    return added

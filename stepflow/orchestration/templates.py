"""Pre-defined workflow templates for common generation pipelines."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .workflow_engine.steps import WorkflowDefinition

logger = logging.getLogger(__name__)


def _generate(step_id: str, name: str, prompt: str, output: str) -> Dict[str, Any]:
    return {
        "id": step_id,
        "name": name,
        "type": "generate",
        "prompt": prompt,
        "output_variable": output,
    }


class CodeGenerationWorkflow:
    """Generate a complete application from a requirements text."""

    name = "code-generation"

    @staticmethod
    def create() -> WorkflowDefinition:
        """Create code generation workflow.

        Reads ``input.requirements``.

        Returns:
            Workflow definition
        """
        steps = [
            _generate(
                "analyze-requirements",
                "Analyze Requirements",
                "Analyze these requirements and create a technical specification: "
                "{{input.requirements}}",
                "specification",
            ),
            _generate(
                "design-architecture",
                "Design Architecture",
                "Design the software architecture for: {{specification}}",
                "architecture",
            ),
            _generate(
                "generate-code",
                "Generate Code",
                "Generate complete code based on: {{architecture}}",
                "code",
            ),
            _generate(
                "create-tests",
                "Create Tests",
                "Generate comprehensive tests for: {{code}}",
                "tests",
            ),
        ]

        return WorkflowDefinition(
            name=CodeGenerationWorkflow.name,
            description="Generate complete applications from specifications",
            steps=steps,
            metadata={"title": "Code Generation Pipeline"},
        )


class ComponentFactoryWorkflow:
    """Design a UI component, its variants, implementation and stories."""

    name = "component-factory"

    @staticmethod
    def create() -> WorkflowDefinition:
        """Create component factory workflow.

        Reads ``input.type`` and ``input.requirements``.

        Returns:
            Workflow definition
        """
        steps = [
            _generate(
                "design-component",
                "Design Component",
                "Design a {{input.type}} component with these requirements: "
                "{{input.requirements}}",
                "design",
            ),
            {
                "id": "build-component",
                "name": "Build Variants and Implementation",
                "type": "parallel",
                "steps": [
                    _generate(
                        "generate-variants",
                        "Generate Variants",
                        "Create 3 variants of this component design: {{design}}",
                        "variants",
                    ),
                    _generate(
                        "implement-component",
                        "Implement Component",
                        "Implement the component in React with TypeScript: {{design}}",
                        "implementation",
                    ),
                ],
                "output_variable": "build",
            },
            _generate(
                "generate-stories",
                "Generate Storybook Stories",
                "Create Storybook stories for: {{build.1}}",
                "stories",
            ),
        ]

        return WorkflowDefinition(
            name=ComponentFactoryWorkflow.name,
            description="Generate UI components with variations",
            steps=steps,
            metadata={"title": "Component Factory"},
        )


class ApiDevelopmentWorkflow:
    """Design, specify, implement and document a REST API."""

    name = "api-development"

    @staticmethod
    def create() -> WorkflowDefinition:
        """Create API development workflow.

        Reads ``input.domain``.

        Returns:
            Workflow definition
        """
        steps = [
            _generate(
                "design-api",
                "Design API",
                "Design a REST API for: {{input.domain}}. "
                "Include endpoints, methods, and data models.",
                "apiDesign",
            ),
            _generate(
                "generate-openapi",
                "Generate OpenAPI Spec",
                "Create OpenAPI 3.0 specification for: {{apiDesign}}",
                "openApiSpec",
            ),
            _generate(
                "implement-server",
                "Implement Server",
                "Implement a server based on: {{openApiSpec}}",
                "serverCode",
            ),
            _generate(
                "generate-client",
                "Generate Client",
                "Generate a client SDK for: {{openApiSpec}}",
                "clientCode",
            ),
            _generate(
                "create-documentation",
                "Create Documentation",
                "Create comprehensive API documentation for: {{openApiSpec}}",
                "documentation",
            ),
        ]

        return WorkflowDefinition(
            name=ApiDevelopmentWorkflow.name,
            description="Generate complete REST APIs with documentation",
            steps=steps,
            metadata={"title": "API Development Pipeline"},
        )


class TestAutomationWorkflow:
    """Plan and generate unit, integration and end-to-end tests."""

    __test__ = False  # not a pytest test class

    name = "test-automation"

    @staticmethod
    def create() -> WorkflowDefinition:
        """Create test automation workflow.

        Reads ``input.code``.

        Returns:
            Workflow definition
        """
        steps = [
            _generate(
                "analyze-code",
                "Analyze Code",
                "Analyze this code for testing requirements: {{input.code}}",
                "testPlan",
            ),
            _generate(
                "unit-tests", "Generate Unit Tests", "Create unit tests based on: {{testPlan}}", "unitTests"
            ),
            _generate(
                "integration-tests",
                "Generate Integration Tests",
                "Create integration tests for: {{testPlan}}",
                "integrationTests",
            ),
            _generate(
                "e2e-tests",
                "Generate E2E Tests",
                "Create end-to-end tests using Playwright for: {{testPlan}}",
                "e2eTests",
            ),
        ]

        return WorkflowDefinition(
            name=TestAutomationWorkflow.name,
            description="Generate comprehensive test suites",
            steps=steps,
            metadata={"title": "Test Automation Suite"},
        )


class DeploymentPipelineWorkflow:
    """Derive a deployment strategy and the artifacts implementing it."""

    name = "deployment-pipeline"

    @staticmethod
    def create() -> WorkflowDefinition:
        """Create deployment pipeline workflow.

        Reads ``input.projectStructure``.

        Returns:
            Workflow definition
        """
        steps = [
            _generate(
                "analyze-project",
                "Analyze Project",
                "Analyze project structure and determine deployment strategy: "
                "{{input.projectStructure}}",
                "deploymentStrategy",
            ),
            _generate(
                "dockerfile",
                "Generate Dockerfile",
                "Create optimized Dockerfile for: {{deploymentStrategy}}",
                "dockerfile",
            ),
            _generate(
                "github-actions",
                "GitHub Actions Workflow",
                "Create GitHub Actions CI/CD workflow for: {{deploymentStrategy}}",
                "githubActions",
            ),
            _generate(
                "kubernetes-manifests",
                "Kubernetes Manifests",
                "Generate Kubernetes manifests for: {{deploymentStrategy}}",
                "kubernetesManifests",
            ),
        ]

        return WorkflowDefinition(
            name=DeploymentPipelineWorkflow.name,
            description="Create complete CI/CD pipeline",
            steps=steps,
            metadata={"title": "Deployment Pipeline"},
        )


BUILTIN_TEMPLATES = (
    CodeGenerationWorkflow,
    ComponentFactoryWorkflow,
    ApiDevelopmentWorkflow,
    TestAutomationWorkflow,
    DeploymentPipelineWorkflow,
)


def load_builtin_templates() -> Dict[str, WorkflowDefinition]:
    """Build the built-in catalog keyed by workflow name."""
    templates = {template.name: template.create() for template in BUILTIN_TEMPLATES}
    logger.debug(f"Loaded {len(templates)} workflow templates")
    return templates


def get_workflow_template(template_name: str) -> Optional[WorkflowDefinition]:
    """Get pre-defined workflow template.

    Args:
        template_name: Name of template

    Returns:
        Workflow definition or None
    """
    for template in BUILTIN_TEMPLATES:
        if template.name == template_name.lower():
            return template.create()

    logger.warning(f"Unknown workflow template: {template_name}")
    return None


def list_template_names() -> List[str]:
    return [template.name for template in BUILTIN_TEMPLATES]

"""Static catalog of gated features offered by the platform."""
from __future__ import annotations

from typing import Dict, Iterable, Optional

from .models import Domain, FeatureDescriptor, FeatureGroup

FEATURE_KEY_PREFIX = "feature_"

_DEVOPS = (Domain.DEVOPS,)
_DEVOPS_DATA = (Domain.DEVOPS, Domain.DATA_ENGINEERING)
_DEVOPS_SECURITY = (Domain.DEVOPS, Domain.CYBERSECURITY)
_ALL_DOMAINS = (Domain.DEVOPS, Domain.DATA_ENGINEERING, Domain.CYBERSECURITY)


def _feature(key: str, title: str, domains, group: FeatureGroup = FeatureGroup.CORE, **kwargs) -> FeatureDescriptor:
    return FeatureDescriptor(key=key, title=title, domains=tuple(domains), group=group, **kwargs)


_FEATURES = (
    _feature("api_generation", "Generate API", _DEVOPS_DATA),
    _feature("docker_generation", "Docker Setup", _DEVOPS),
    _feature("cicd_generation", "Jenkins Pipeline", _DEVOPS),
    _feature("ansible_generation", "Ansible Playbook", _DEVOPS),
    _feature("sonarqube_setup", "SonarQube Setup", _DEVOPS_SECURITY),
    _feature("ai_assistance", "AI Assistant", _ALL_DOMAINS),
    _feature("deployment_simulator", "Deployment Simulator", _DEVOPS, FeatureGroup.ADVANCED),
    _feature("iac_autofix", "IaC Autofix", _DEVOPS, FeatureGroup.ADVANCED),
    _feature("release_notes", "Release Notes", _DEVOPS, FeatureGroup.ADVANCED),
    _feature("secret_scanner", "Secret Scanner", _DEVOPS_SECURITY, FeatureGroup.ADVANCED),
    _feature("cloud_optimizer", "Cloud Optimizer", _DEVOPS_DATA, FeatureGroup.ADVANCED),
    _feature("infra_chat", "Infra Chat", _DEVOPS, FeatureGroup.ADVANCED),
    _feature("blueprint_generator", "Blueprint Generator", _DEVOPS_DATA, FeatureGroup.ADVANCED),
    _feature("postmortem_generator", "Post-Mortem", _DEVOPS_SECURITY, FeatureGroup.ADVANCED),
    _feature("env_replicator", "Magic Sandbox", _DEVOPS, FeatureGroup.ADVANCED),
    _feature("db_optimizer", "AI DBA", _DEVOPS_DATA, FeatureGroup.ADVANCED),
    _feature("website_monitor", "Website Monitor", _DEVOPS, FeatureGroup.ADVANCED),
    _feature("migration_assistant", "Migration Assistant", _DEVOPS, FeatureGroup.ADVANCED),
    _feature("cost_estimator", "Cost Estimator", _DEVOPS_DATA, FeatureGroup.ADVANCED, metered=False),
    _feature("snowflake_setup", "Snowflake Setup", (Domain.DATA_ENGINEERING,), FeatureGroup.DATA),
    _feature("airflow_generation", "Airflow DAG Generator", (Domain.DATA_ENGINEERING,), FeatureGroup.DATA),
    _feature("dbt_generation", "dbt Model Generator", (Domain.DATA_ENGINEERING,), FeatureGroup.DATA),
    _feature(
        "spark_generation",
        "Spark Job Generator",
        (Domain.DATA_ENGINEERING,),
        FeatureGroup.DATA,
        enabled=False,
        coming_soon_message="Spark job generation is coming soon.",
    ),
    _feature(
        "vulnerability_scanner",
        "Vulnerability Scanner",
        (Domain.CYBERSECURITY,),
        FeatureGroup.SECURITY,
    ),
    _feature(
        "pentest_planner",
        "Pentest Planner",
        (Domain.CYBERSECURITY,),
        FeatureGroup.SECURITY,
        enabled=False,
        coming_soon_message="Pentest planning is coming soon.",
    ),
)

FEATURE_CATALOG: Dict[str, FeatureDescriptor] = {feature.key: feature for feature in _FEATURES}

# Features whose usage counts are reported on the usage endpoint.
USAGE_REPORT_KEYS = ("api_generation", "docker_generation", "cicd_generation", "ai_assistance")


def normalize_feature_key(feature_key: str) -> str:
    """Strip the optional ``feature_`` settings prefix and surrounding whitespace."""

    key = (feature_key or "").strip()
    if key.startswith(FEATURE_KEY_PREFIX):
        key = key[len(FEATURE_KEY_PREFIX):]
    return key


def features_for_domain(domain: Domain, features: Optional[Iterable[FeatureDescriptor]] = None) -> list[FeatureDescriptor]:
    source = FEATURE_CATALOG.values() if features is None else features
    return [feature for feature in source if domain in feature.domains]

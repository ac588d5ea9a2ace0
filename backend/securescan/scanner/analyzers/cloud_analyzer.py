# securescan/scanner/analyzers/cloud_analyzer.py
"""
Cloud Security Analyzer.

Reads the provider detected by CloudEngine and produces at most one
CloudFinding for the target:

    1. infer the resource type from the matched hostname
    2. run the provider's rule table (GENERIC_RULES for providers without one)
    3. score: 100 minus SEVERITY_PENALTY per fired check, clamped at 0
    4. risk level from the severity counts (see risk_level_for)

No detection means no finding, not an error.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

from securescan.records import CloudCheck, CloudFinding
from securescan.scanner.base import BaseAnalyzer, ScanContext

logger = logging.getLogger(__name__)

COMPLIANCE_FRAMEWORK = "CIS"

SEVERITY_PENALTY: Dict[str, int] = {
    "critical": 25,
    "high": 15,
    "medium": 10,
    "low": 5,
}


# ---------------------------------------------------------------------------
# Resource type inference
#
# Per provider: (substring, resource type) pairs checked in order, then the
# provider's fallback. Providers not listed are always "application".
# ---------------------------------------------------------------------------

RESOURCE_TYPE_HINTS: Dict[str, Tuple[Tuple[Tuple[str, ...], str], ...]] = {
    "aws": (
        (("s3",), "storage"),
        (("elb", "loadbalancer"), "loadbalancer"),
        (("rds",), "database"),
        (("cloudfront",), "cdn"),
        (("execute-api",), "api-gateway"),
        (("elasticbeanstalk",), "application"),
    ),
    "azure": (
        (("azurewebsites",), "webapp"),
        (("database",), "database"),
        (("storage",), "storage"),
        (("cloudapp",), "compute"),
        (("azureedge",), "cdn"),
    ),
    "gcp": (
        (("storage",), "storage"),
        (("appspot",), "appengine"),
        (("cloudfunctions",), "functions"),
        (("run.app",), "cloudrun"),
    ),
}

RESOURCE_TYPE_FALLBACK: Dict[str, str] = {
    "aws": "compute",
    "azure": "application",
    "gcp": "compute",
}


def infer_resource_type(hostname: str, provider: str) -> str:
    hostname = hostname.lower()
    for needles, resource_type in RESOURCE_TYPE_HINTS.get(provider, ()):
        if any(n in hostname for n in needles):
            return resource_type
    return RESOURCE_TYPE_FALLBACK.get(provider, "application")


# ---------------------------------------------------------------------------
# Region extraction
# ---------------------------------------------------------------------------

REGION_PATTERNS: Dict[str, Pattern[str]] = {
    "aws": re.compile(r"([a-z]{2}-[a-z]+-\d)"),
    "azure": re.compile(
        r"(eastus|westus|centralus|northeurope|westeurope|southeastasia|eastasia)"
    ),
    "gcp": re.compile(r"(us-central1|us-east1|us-west1|europe-west1|asia-east1)"),
}


def extract_region(hostname: str, provider: str) -> Optional[str]:
    pattern = REGION_PATTERNS.get(provider)
    if pattern is None:
        return None
    match = pattern.search(hostname.lower())
    return match.group(1) if match else None


# ---------------------------------------------------------------------------
# Rule tables
#
# A rule fires when the resource type matches and, if hostname_contains is
# set, the target hostname contains it. resource_type None matches any type.
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CloudRule:
    resource_type: Optional[str]
    check: CloudCheck
    hostname_contains: Optional[str] = None

    def applies(self, resource_type: str, hostname: str) -> bool:
        if self.resource_type is not None and self.resource_type != resource_type:
            return False
        if self.hostname_contains and self.hostname_contains not in hostname:
            return False
        return True


PROVIDER_RULES: Dict[str, Tuple[CloudRule, ...]] = {
    "aws": (
        CloudRule("storage", hostname_contains="s3", check=CloudCheck(
            id="aws-s3-public-access",
            severity="high",
            title="S3 Bucket Public Access",
            description="S3 bucket appears to be publicly accessible via direct URL",
            recommendation=(
                "Review bucket policy and ACLs. Implement least privilege access "
                "and consider using CloudFront for public content."
            ),
            compliance=("CIS", "AWS-Foundational"),
        )),
        CloudRule("cdn", hostname_contains="cloudfront", check=CloudCheck(
            id="aws-cloudfront-security-headers",
            severity="medium",
            title="CloudFront Security Headers",
            description="Verify that CloudFront distribution includes security headers",
            recommendation=(
                "Configure CloudFront to add security headers like HSTS, CSP, "
                "X-Content-Type-Options"
            ),
            compliance=("OWASP", "CIS"),
        )),
        CloudRule("loadbalancer", check=CloudCheck(
            id="aws-elb-ssl-policy",
            severity="medium",
            title="Load Balancer SSL Policy",
            description="Ensure load balancer uses strong SSL/TLS policy",
            recommendation=(
                "Configure ELB to use predefined security policy "
                "ELBSecurityPolicy-TLS-1-2-2017-01 or newer"
            ),
            compliance=("CIS", "PCI-DSS"),
        )),
    ),
    "azure": (
        CloudRule("webapp", check=CloudCheck(
            id="azure-webapp-https",
            severity="high",
            title="Azure Web App HTTPS Enforcement",
            description="Verify HTTPS-only access is enforced for Azure Web App",
            recommendation='Enable "HTTPS Only" setting in Azure portal and redirect HTTP to HTTPS',
            compliance=("CIS", "Azure-Security-Benchmark"),
        )),
        CloudRule("webapp", check=CloudCheck(
            id="azure-webapp-managed-identity",
            severity="medium",
            title="Managed Identity Configuration",
            description="Consider using Azure Managed Identity for secure resource access",
            recommendation="Enable system-assigned managed identity to eliminate stored credentials",
            compliance=("Azure-Security-Benchmark",),
        )),
        CloudRule("storage", check=CloudCheck(
            id="azure-storage-access",
            severity="high",
            title="Azure Storage Account Security",
            description="Review storage account access configuration",
            recommendation="Disable public blob access and use private endpoints where possible",
            compliance=("CIS", "Azure-Security-Benchmark"),
        )),
    ),
    "gcp": (
        CloudRule("appengine", check=CloudCheck(
            id="gcp-appengine-security",
            severity="medium",
            title="App Engine Security Configuration",
            description="Review App Engine security settings and IAM policies",
            recommendation="Implement least privilege IAM roles and enable audit logging",
            compliance=("CIS", "GCP-Security-Benchmark"),
        )),
        CloudRule("storage", check=CloudCheck(
            id="gcp-storage-bucket-policy",
            severity="high",
            title="Cloud Storage Bucket Policy",
            description="Verify bucket access controls and public access prevention",
            recommendation="Enable uniform bucket-level access and review bucket IAM policies",
            compliance=("CIS", "GCP-Security-Benchmark"),
        )),
        CloudRule("cloudrun", check=CloudCheck(
            id="gcp-cloudrun-auth",
            severity="medium",
            title="Cloud Run Authentication",
            description="Ensure proper authentication is configured for Cloud Run services",
            recommendation="Configure IAM authentication and avoid allowing unauthenticated access",
            compliance=("GCP-Security-Benchmark",),
        )),
    ),
}

GENERIC_RULES: Tuple[CloudRule, ...] = (
    CloudRule(None, check=CloudCheck(
        id="cloud-https-enforcement",
        severity="medium",
        title="HTTPS Enforcement",
        description="Verify that HTTPS is properly enforced for cloud resources",
        recommendation="Configure automatic HTTPS redirect and use strong TLS configuration",
        compliance=("OWASP", "General"),
    )),
    CloudRule(None, check=CloudCheck(
        id="cloud-access-logging",
        severity="low",
        title="Access Logging",
        description="Ensure comprehensive access logging is enabled",
        recommendation="Enable access logs and integrate with SIEM for monitoring",
        compliance=("General",),
    )),
)


def evaluate_rules(provider: str, resource_type: str, hostname: str) -> List[CloudCheck]:
    rules = PROVIDER_RULES.get(provider, GENERIC_RULES)
    hostname = hostname.lower()
    return [rule.check for rule in rules if rule.applies(resource_type, hostname)]


def cloud_score(checks: Iterable[CloudCheck]) -> int:
    score = 100 - sum(SEVERITY_PENALTY.get(c.severity, 0) for c in checks)
    return max(0, score)


def risk_level_for(checks: Iterable[CloudCheck]) -> str:
    severities = [c.severity for c in checks]
    high = severities.count("high")
    if "critical" in severities:
        return "critical"
    if high > 2:
        return "high"
    if high > 0 or severities.count("medium") > 3:
        return "medium"
    return "low"


class CloudAnalyzer(BaseAnalyzer):

    @property
    def name(self) -> str:
        return "cloud_analyzer"

    @property
    def required_engine(self) -> str:
        return "cloud"

    def analyze(self, ctx: ScanContext) -> List[CloudFinding]:
        data = ctx.get_engine_data(self.required_engine)
        detection = data.get("detection")
        if not detection:
            return []

        provider = detection["provider"]
        hostname = ctx.hostname
        # resource type comes from whatever name matched; rules and region
        # are judged against the target hostname itself
        resource_type = infer_resource_type(detection["matched_hostname"], provider)
        checks = evaluate_rules(provider, resource_type, hostname)

        finding = CloudFinding(
            scan_id=ctx.scan_id,
            cloud_provider=provider,
            resource_type=resource_type,
            resource_id=hostname,
            region=extract_region(hostname, provider),
            findings=tuple(checks),
            risk_level=risk_level_for(checks),
            score=cloud_score(checks),
            compliance_framework=COMPLIANCE_FRAMEWORK,
        )
        logger.info(
            f"Cloud {hostname}: {provider}/{resource_type} via {detection.get('source')}, "
            f"{len(checks)} checks, risk {finding.risk_level}"
        )
        return [finding]

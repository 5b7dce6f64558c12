"""
Built-in dataroom folder templates.

A template is a forest of ``FolderTemplate`` nodes (folders only, no
documents). ``TreeMaterializer.apply_template`` walks one into real folder
rows.
"""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_validator

from dataroom.engine.errors import DataroomNotFoundError


class FolderTemplate(BaseModel):
    name: str
    subfolders: List["FolderTemplate"] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Template folder name must not be empty")
        return v

    def count(self) -> int:
        """Number of folders in this subtree, self included."""
        total = 0
        stack = [self]
        while stack:
            node = stack.pop()
            total += 1
            stack.extend(node.subfolders)
        return total


class DataroomTemplate(BaseModel):
    key: str
    name: str
    folders: List[FolderTemplate]

    @property
    def folder_count(self) -> int:
        return sum(f.count() for f in self.folders)


def _f(name: str, *subfolders: str) -> Dict[str, Any]:
    return {"name": name, "subfolders": [{"name": s} for s in subfolders]}


_TEMPLATE_DATA: Dict[str, Dict[str, Any]] = {
    "startup-fundraising": {
        "name": "Startup Fundraising",
        "folders": [
            _f("Corporate or Investment Memo"),
            _f("Corporate Documents", "Company Registration", "Group Structure", "Shareholder Overview"),
            _f("Financial Forecast and Actuals", "Forecasts", "Actuals"),
            _f("Legal and Tax Documents", "Contracts", "IP Agreements", "Capitalization Table"),
            _f("Go-to-Market and Marketing Strategy", "Business Plan", "Organizational Chart"),
            _f("Product Roadmap"),
            _f("Pitch Deck"),
        ],
    },
    "raising-first-fund": {
        "name": "Raising First Fund",
        "folders": [
            _f("1 Introduction", "Presentations"),
            _f("2 Team", "CVs & References"),
            _f("3 Track Record", "Track record & portfolio references"),
            _f("4 Fund Model", "XLSX granular track record"),
            _f("5 Legal", "Executed LPA, bylaws"),
            _f("6 Portfolio", "Investment memos of portfolio companies"),
        ],
    },
    "ma-acquisition": {
        "name": "M&A / Acquisition",
        "folders": [
            _f("1 Executive Summary", "Transaction Overview", "Investment Highlights"),
            _f("2 Corporate Structure & Governance", "Corporate Documents", "Board Materials",
               "Shareholder Agreements"),
            _f("3 Financial Information", "Historical Financials", "Audited Statements",
               "Management Accounts", "Financial Projections"),
            _f("4 Legal & Compliance", "Material Contracts", "Litigation & Disputes",
               "Regulatory Compliance", "Permits & Licenses"),
            _f("5 Intellectual Property", "Patents & Trademarks", "Licenses & Assignments", "IP Agreements"),
            _f("6 Contracts & Agreements", "Customer Contracts", "Supplier Agreements",
               "Partnership Agreements"),
            _f("7 Human Resources", "Employee List", "Employment Agreements",
               "Benefits & Compensation", "Organization Chart"),
            _f("8 Tax Documents", "Tax Returns", "Tax Assessments"),
            _f("9 Assets & Liabilities", "Real Estate", "Equipment & Inventory", "Debt & Obligations"),
            _f("10 Insurance", "Insurance Policies", "Claims History"),
        ],
    },
    "series-a-plus": {
        "name": "Series A+ Fundraising",
        "folders": [
            _f("1 Investment Memorandum", "Executive Summary", "Pitch Deck"),
            _f("2 Financial Information", "Historical Financials", "Financial Projections",
               "Unit Economics", "KPI Dashboard"),
            _f("3 Corporate Documents", "Incorporation Documents", "Board Materials", "Shareholder Agreements"),
            _f("4 Cap Table & Term Sheets", "Capitalization Table", "Previous Rounds", "Stock Option Pool"),
            _f("5 Product & Technology", "Product Roadmap", "Technical Documentation", "Product Demos"),
            _f("6 Market & Traction", "Market Analysis", "Customer Data", "Growth Metrics", "Case Studies"),
            _f("7 Team & Organization", "Team Bios", "Organizational Chart", "Advisory Board",
               "Key Hires Plan"),
            _f("8 Legal & IP", "IP Portfolio", "Material Contracts", "Compliance Documents"),
            _f("9 Competitive Analysis", "Competitive Landscape", "Differentiation"),
            _f("10 Use of Funds", "Budget Allocation", "Milestones"),
        ],
    },
    "real-estate-transaction": {
        "name": "Real Estate Transaction",
        "folders": [
            _f("1 Property Information", "Property Overview", "Location & Site Plans", "Building Specifications"),
            _f("2 Title & Ownership", "Title Documents", "Ownership Structure", "Deed & Transfer Documents"),
            _f("3 Legal Documents", "Purchase Agreements", "Easements & Restrictions", "Zoning & Permits"),
            _f("4 Financial Information", "Operating Statements", "Rent Roll", "Expense Reports",
               "Tax Assessments"),
            _f("5 Leases & Tenancies", "Tenant Leases", "Tenant Correspondence", "Lease Abstracts"),
            _f("6 Property Surveys & Plans", "Survey Reports", "Floor Plans", "As-Built Drawings"),
            _f("7 Environmental Reports", "Environmental Assessments", "Soil Reports", "Remediation Documents"),
            _f("8 Building Inspections", "Structural Inspections", "Engineering Reports", "Maintenance Records"),
            _f("9 Property Management", "Management Agreements", "Vendor Contracts", "Service Agreements"),
            _f("10 Insurance & Warranties", "Insurance Policies", "Warranties", "Claims History"),
        ],
    },
    "fund-management": {
        "name": "Fund Management",
        "folders": [
            _f("1 Fund Documents", "Fund Formation Documents", "LPA & Side Letters", "Fund Policies"),
            _f("2 LP Relations", "LP Commitments", "Capital Calls", "Distribution Notices", "LP Communications"),
            _f("3 Financial Reporting", "Quarterly Reports", "Annual Reports", "NAV Statements",
               "Cash Flow Reports"),
            _f("4 Compliance & Legal", "Regulatory Filings", "Audit Reports", "Tax Documents", "Legal Opinions"),
            _f("5 Investment Activities", "Investment Memos", "Deal Pipeline", "Investment Committee Materials"),
            _f("6 Portfolio Monitoring", "Portfolio Company Updates", "Board Materials", "Valuations"),
            _f("7 Operations", "Fund Administration", "Service Provider Agreements", "Policies & Procedures"),
            _f("8 Investor Communications", "Investor Letters", "Meeting Materials", "AGM Documents"),
        ],
    },
    "portfolio-management": {
        "name": "Portfolio Management",
        "folders": [
            _f("1 Portfolio Overview", "Portfolio Summary", "Portfolio Strategy", "Performance Dashboard"),
            _f("2 Portfolio Companies", "Company Profiles", "Investment Theses", "Ownership Information"),
            _f("3 Financial Performance", "Company Financials", "KPI Reports", "Valuations", "Return Analysis"),
            _f("4 Board & Governance", "Board Decks", "Meeting Minutes", "Board Observer Rights"),
            _f("5 Operational Support", "Value Creation Plans", "Strategic Initiatives", "Operational Reviews"),
            _f("6 Deal Documents", "Investment Agreements", "Shareholder Agreements", "Cap Tables"),
            _f("7 Follow-on & Exits", "Follow-on Analysis", "Exit Planning", "M&A Materials"),
            _f("8 Portfolio Monitoring", "Monthly Updates", "Risk Assessments", "Action Items"),
        ],
    },
    "project-management": {
        "name": "Project Management",
        "folders": [
            _f("1 Project Overview", "Project Charter", "Scope & Objectives", "Project Plan"),
            _f("2 Requirements & Specifications", "Requirements Documentation", "Technical Specifications",
               "User Stories"),
            _f("3 Project Planning", "Work Breakdown Structure", "Timeline & Milestones", "Resource Plan",
               "Budget"),
            _f("4 Team & Stakeholders", "Team Directory", "Roles & Responsibilities", "Stakeholder Matrix"),
            _f("5 Project Execution", "Sprint Plans", "Task Tracking", "Deliverables"),
            _f("6 Communication", "Status Reports", "Meeting Notes", "Stakeholder Updates"),
            _f("7 Risk & Issues", "Risk Register", "Issue Log", "Change Requests"),
            _f("8 Quality & Testing", "Quality Standards", "Test Plans", "Acceptance Criteria"),
            _f("9 Documentation", "Process Documentation", "User Guides", "Training Materials"),
            _f("10 Project Closure", "Final Reports", "Lessons Learned", "Handover Documents"),
        ],
    },
    "sales-dataroom": {
        "name": "Sales Data Room",
        "folders": [
            _f("1 Sales Materials", "Sales Decks", "Product Brochures", "One Pagers"),
            _f("2 Proposals & Quotes", "Proposals", "Pricing"),
            _f("3 Contracts & Agreements", "Master Service Agreements", "NDAs", "Terms & Conditions"),
            _f("4 Product Information", "Product Specs", "Demo Videos", "Case Studies"),
            _f("5 Customer References", "Testimonials", "Reference Letters"),
            _f("6 Security & Compliance", "Security Documentation", "Compliance Certificates",
               "Insurance Certificates"),
        ],
    },
}

DATAROOM_TEMPLATES: Dict[str, DataroomTemplate] = {
    key: DataroomTemplate(key=key, **data) for key, data in _TEMPLATE_DATA.items()
}


def get_template(key: str) -> DataroomTemplate:
    template = DATAROOM_TEMPLATES.get(key)
    if template is None:
        raise DataroomNotFoundError(
            f"Unknown dataroom template '{key}'",
            record_type="template",
            record_id=key,
        )
    return template


def parse_folder_templates(data: List[Dict[str, Any]]) -> List[FolderTemplate]:
    """Validate a raw ``[{name, subfolders}]`` structure (e.g. loaded from YAML)."""
    return [FolderTemplate.model_validate(item) for item in data]

""" Standard templates shipped with the engine. """

from .repository import InMemoryTemplateRepository

VALUATIONS_YAML = """
key: valuations
name: Group Valuations
description: "Streamlined 4-stage valuation workflow: Assign valuer, complete fields, review, and finalize"
category: valuation
stages: [Valuer Assignment, Field Completion, Review, Completed]

workstreams:
  - key: valuer_assignment
    name: Valuer Assignment
    description: Assign a valuer to the property and send notification
    estimated_duration_days: 2
    fields:
      - { id: valuer_name, label: Valuer Name, type: text, required: true }
      - { id: valuer_email, label: Valuer Email, type: text }
      - { id: assignment_date, label: Assignment Date, type: date }
      - { id: expected_completion, label: Expected Completion Date, type: date }
      - { id: assignment_notes, label: Assignment Notes, type: textarea }
      - { id: notification_sent, label: Notification Sent, type: select, options: ["Yes", "No"] }

  - key: field_completion
    name: Field Completion
    description: Collect income, expenses and valuation inputs
    estimated_duration_days: 10
    fields:
      - { id: property_details, label: Property Details, type: textarea }
      - { id: gross_rental_income, label: Gross Rental Income, type: currency }
      - { id: operating_expenses, label: Operating Expenses, type: currency }
      - { id: net_operating_income, label: Net Operating Income, type: formula, formula: "gross_rental_income - operating_expenses" }
      - { id: cap_rate, label: Cap Rate %, type: number }
      - { id: property_value, label: Property Value, type: formula, formula: "net_operating_income / (cap_rate / 100)" }
      - { id: property_area, label: Property Area (sq ft), type: number }
      - { id: price_per_sqft, label: Price per Sq Ft, type: formula, formula: "property_value / property_area" }
      - id: valuation_method
        label: Valuation Method
        type: select
        options: [Income Capitalization, Sales Comparison, Cost Approach, DCF Analysis]
      - { id: supporting_evidence, label: Supporting Evidence, type: text }
      - { id: valuation_notes, label: Valuation Notes, type: textarea }
      - { id: completion_date, label: Completion Date, type: date }
      - { id: ready_for_review, label: Ready for Review, type: select, options: ["Yes", "No", "Pending"] }

  - key: review
    name: Review
    description: Internal review against an independent market estimate
    estimated_duration_days: 3
    fields:
      - { id: reviewer_name, label: Reviewer Name, type: text }
      - { id: reviewer_email, label: Reviewer Email, type: text }
      - { id: review_date, label: Review Date, type: date }
      - { id: market_value_estimate, label: Market Value Estimate, type: currency }
      - id: variance_percentage
        label: Variance %
        type: formula
        formula: "((market_value_estimate - field_completion.property_value) / field_completion.property_value) * 100"
      - id: confidence_score
        label: Confidence Score
        type: formula
        formula: "IF(ABS(variance_percentage) < 5, 95, IF(ABS(variance_percentage) < 10, 85, 70))"
      - id: review_decision
        label: Review Decision
        type: select
        options: [Approved, Rejected, Needs Revision, Under Review]
      - { id: review_comments, label: Review Comments, type: textarea }
      - { id: revision_required, label: Revision Required, type: select, options: ["Yes", "No"] }
      - { id: revision_notes, label: Revision Notes, type: textarea }
      - { id: review_turnaround_days, label: Review Turnaround (days), type: formula, formula: "IF(review_date > 0 and valuer_assignment.assignment_date > 0, review_date - valuer_assignment.assignment_date, 0)" }

  - key: completion
    name: Completion
    description: Final approval and report delivery
    estimated_duration_days: 1
    fields:
      - { id: final_approval_date, label: Final Approval Date, type: date }
      - { id: approved_by, label: Approved By, type: text }
      - { id: final_valuation_amount, label: Final Valuation Amount, type: currency }
      - { id: completion_notes, label: Completion Notes, type: textarea }
      - { id: valuation_report, label: Valuation Report, type: text }
      - { id: workflow_completed, label: Workflow Completed, type: select, options: ["Yes", "No", "In Progress"] }
"""

LEASE_MANAGEMENT_YAML = """
key: lease_management
name: Lease Management
description: Complete lease lifecycle management from tenant screening to renewal
category: lease_management
stages: [Tenant Screening, Lease Execution, Active Management, Renewal]

workstreams:
  - key: tenant_screening
    name: Tenant Screening
    estimated_duration_days: 5
    fields:
      - { id: tenant_name, label: Tenant Name, type: text, required: true }
      - { id: credit_score, label: Credit Score, type: number }
      - { id: income_verified, label: Income Verified, type: boolean }
      - { id: background_check_passed, label: Background Check Passed, type: boolean }

  - key: lease_negotiation
    name: Lease Negotiation
    estimated_duration_days: 7
    fields:
      - { id: rent_amount, label: Rent Amount, type: currency }
      - { id: lease_term, label: Lease Term (months), type: number }
      - { id: security_deposit, label: Security Deposit, type: currency }
      - { id: total_lease_value, label: Total Lease Value, type: formula, formula: "rent_amount * lease_term" }
      - { id: deposit_months, label: Deposit (months of rent), type: formula, formula: "security_deposit / rent_amount" }
      - { id: special_terms, label: Special Terms, type: textarea }
"""


def default_repository() -> InMemoryTemplateRepository:
    """ A fresh repository holding the standard templates. """
    return InMemoryTemplateRepository.from_yaml(VALUATIONS_YAML, LEASE_MANAGEMENT_YAML)

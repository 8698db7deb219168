"""Static sample records served by the protected resource APIs."""

HR_DATA = [
    {
        "id": "emp001",
        "name": "Alice Johnson",
        "department": "Engineering",
        "position": "Senior Software Engineer",
        "email": "alice.johnson@company.com",
        "salary": 145000,
        "hireDate": "2020-03-15",
    },
    {
        "id": "emp002",
        "name": "Bob Smith",
        "department": "Finance",
        "position": "Financial Analyst",
        "email": "bob.smith@company.com",
        "salary": 95000,
        "hireDate": "2021-06-01",
    },
]

FINANCIAL_DATA = [
    {
        "id": "fin001",
        "quarter": "Q1 2025",
        "revenue": 2500000,
        "expenses": 1800000,
        "profit": 700000,
        "department": "Company-wide",
    },
    {
        "id": "fin002",
        "quarter": "Q4 2024",
        "revenue": 2300000,
        "expenses": 1700000,
        "profit": 600000,
        "department": "Company-wide",
    },
]

KPI_DATA = [
    {
        "id": "kpi001",
        "metric": "Customer Satisfaction",
        "value": 87,
        "target": 85,
        "trend": "up",
        "period": "March 2025",
    },
    {
        "id": "kpi002",
        "metric": "Employee Retention",
        "value": 92,
        "target": 90,
        "trend": "up",
        "period": "March 2025",
    },
]

SALESFORCE_DATA = [
    {
        "id": "sf001",
        "opportunityName": "Enterprise Cloud Migration",
        "accountName": "Acme Corporation",
        "stage": "Proposal/Price Quote",
        "amount": 500000,
        "closeDate": "2025-04-15",
        "probability": 75,
    },
    {
        "id": "sf002",
        "opportunityName": "Digital Transformation Project",
        "accountName": "Global Industries Inc",
        "stage": "Negotiation/Review",
        "amount": 850000,
        "closeDate": "2025-05-30",
        "probability": 60,
    },
]

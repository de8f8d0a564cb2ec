"""
Insurance application package.

Holds the records of insured persons and doctors together with the
consultation, prescription and reimbursement rules applied to them.
"""

"""Authentication and authorization.

Learn: Three ways in, one principal out:
1. Local users → username/email + password → bearer token (tokens.py)
2. Google / GitHub → authorization-code flow → account resolved or
   provisioned (identity.py) → bearer token via redirect (redirects.py)
3. Every later request → Authorization: Bearer ... → Principal, checked
   against the route table (policy.py, dependencies.py)

Tokens are stateless: nothing about a session is stored server-side.
"""

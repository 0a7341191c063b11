"""
drf-spectacular postprocessing hooks for the exam platform schema.
"""

TOKEN_AUTH = {
    'type': 'apiKey',
    'in': 'header',
    'name': 'Authorization',
    'description': 'Token-based authentication. Format: `Token <your-token>`'
}

PUBLIC_OPERATIONS = {
    ('/api/auth/login/', 'post'),
}


def token_auth_only(result, generator, request, public):
    """Document token auth as the only scheme; signing in is the one public operation."""
    result.setdefault('components', {})['securitySchemes'] = {'TokenAuth': TOKEN_AUTH}
    for path, operations in result.get('paths', {}).items():
        for method, operation in operations.items():
            if not isinstance(operation, dict):
                continue
            operation['security'] = [] if (path, method) in PUBLIC_OPERATIONS else [{'TokenAuth': []}]
    return result

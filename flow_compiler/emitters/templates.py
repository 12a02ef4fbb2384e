"""
Per-type source templates for generated script modules.

Templates take no interpolation of their own. ``render_module`` prepends a
header that embeds the node's resolved config as a JSON string literal,
decoded at import time, so no config value ever lands in code position.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, Mapping

HEADER = """# {kind} module: {label}
# Generated by AgentFlow. Edit the workflow, not this file.

import json

CONFIG = json.loads({config_literal})
"""

PROMPT_BODY = """

def _substitute(text, values):
    for key, value in (values or {}).items():
        text = text.replace('{{' + str(key) + '}}', str(value))
        text = text.replace('{{ ' + str(key) + ' }}', str(value))
    return text


def main(input=None, context=None):
    instruction = _substitute(CONFIG.get('instruction', ''), input if isinstance(input, dict) else {})
    instruction = _substitute(instruction, context if isinstance(context, dict) else {})
    response = call_model(instruction, model=CONFIG.get('model'), temperature=CONFIG.get('temperature'),
                          max_tokens=CONFIG.get('maxTokens'))
    return {
        'success': True,
        'response': response,
        'model': CONFIG.get('model'),
        'instruction': instruction,
    }


def call_model(instruction, model=None, temperature=None, max_tokens=None):
    # Replaced by the engine's model provider at deploy time.
    return 'AI response to: ' + instruction
"""

HTTP_TOOL_BODY = """
import urllib.request


def main(input=None, url_params=None):
    params = CONFIG.get('parameters') or {}
    url = params.get('url', '')
    for key, value in (url_params or {}).items():
        url = url.replace('{{' + str(key) + '}}', str(value))
    method = params.get('method') or 'GET'
    headers = {'Content-Type': 'application/json'}
    headers.update(params.get('headers') or {})
    body = params.get('body')
    if body is None and method != 'GET' and isinstance(input, dict):
        body = input
    data = json.dumps(body).encode('utf-8') if body is not None and method != 'GET' else None
    request = urllib.request.Request(url, data=data, headers=headers, method=method)
    with urllib.request.urlopen(request) as response:
        raw = response.read().decode('utf-8')
        content_type = response.headers.get('Content-Type', '')
        payload = json.loads(raw) if 'application/json' in content_type else raw
        return {
            'success': 200 <= response.status < 300,
            'status': response.status,
            'data': payload,
            'url': url,
            'method': method,
        }
"""

GENERIC_TOOL_BODY = """

def main(input=None):
    return {
        'success': True,
        'service': CONFIG.get('service'),
        'action': CONFIG.get('action'),
        'parameters': CONFIG.get('parameters') or {},
        'input': input,
    }
"""

LOGIC_BODY = """
import operator

_OPERATORS = [
    ('===', operator.eq),
    ('==', operator.eq),
    ('!=', operator.ne),
    ('>=', operator.ge),
    ('<=', operator.le),
    ('>', operator.gt),
    ('<', operator.lt),
]


def _value(expression, scope):
    expression = expression.strip()
    if len(expression) >= 2 and expression[0] == expression[-1] and expression[0] in ('"', "'"):
        return expression[1:-1]
    try:
        return float(expression)
    except ValueError:
        pass
    value = scope
    for part in expression.split('.'):
        value = value.get(part) if isinstance(value, dict) else None
    return value


def evaluate(condition, scope):
    condition = (condition or '').strip()
    if condition.lower() in ('true', 'always', 'default', 'else', '*'):
        return True
    for token, compare in _OPERATORS:
        if token in condition:
            left, right = condition.split(token, 1)
            try:
                return bool(compare(_value(left, scope), _value(right, scope)))
            except TypeError:
                return False
    return False


def main(input=None):
    condition_type = CONFIG.get('conditionType') or 'if-else'
    condition = CONFIG.get('condition', '')
    if condition_type == 'filter':
        if not isinstance(input, list):
            raise ValueError('filter logic requires a list input')
        kept = [item for item in input if evaluate(condition, item if isinstance(item, dict) else {})]
        return {'success': True, 'type': 'filter', 'result': kept, 'input_count': len(input)}
    scope = input if isinstance(input, dict) else {}
    if condition_type == 'switch':
        for branch in CONFIG.get('branches') or []:
            if evaluate(branch.get('condition'), scope):
                return {'success': True, 'type': 'switch', 'branch': branch.get('label')}
        return {'success': True, 'type': 'switch', 'branch': None}
    result = evaluate(condition, scope)
    return {'success': True, 'type': 'if-else', 'branch': 'true' if result else 'false', 'result': result}
"""

MEMORY_BODY = """

_STORE = {}


def _slot():
    return _STORE.setdefault(CONFIG.get('scope') or 'session', {})


def main(input=None):
    operation = CONFIG.get('operation') or 'store'
    key = CONFIG.get('key', '')
    slot = _slot()
    if operation in ('store', 'update'):
        value = input if input is not None else CONFIG.get('value')
        if operation == 'update' and isinstance(slot.get(key), dict) and isinstance(value, dict):
            merged = dict(slot[key])
            merged.update(value)
            value = merged
        slot[key] = value
        return {'success': True, 'operation': operation, 'key': key, 'value': value}
    if operation == 'retrieve':
        return {'success': True, 'operation': operation, 'key': key, 'data': slot.get(key)}
    if operation == 'delete':
        return {'success': True, 'operation': operation, 'key': key, 'deleted': slot.pop(key, None) is not None}
    raise ValueError('unknown memory operation: ' + str(operation))
"""

INTEGRATION_BODY = """
import urllib.request

BASE_URLS = {
    'slack': 'https://slack.com/api',
    'notion': 'https://api.notion.com/v1',
    'github': 'https://api.github.com',
}


def _lookup(payload, path):
    for part in path.split('.'):
        payload = payload.get(part) if isinstance(payload, dict) else None
    return payload


def main(input=None, credentials=None):
    capability = CONFIG.get('capabilityId', '')
    endpoint = CONFIG.get('endpoint', '')
    method = CONFIG.get('method') or 'GET'
    headers = {'Content-Type': 'application/json'}
    headers.update(CONFIG.get('headers') or {})
    if credentials and credentials.get('api_key'):
        headers['Authorization'] = 'Bearer ' + credentials['api_key']
    body = CONFIG.get('body')
    if body is None and method != 'GET' and isinstance(input, dict):
        body = input
    url = endpoint if endpoint.startswith('http') else BASE_URLS.get(capability, '') + endpoint
    data = json.dumps(body).encode('utf-8') if body is not None and method != 'GET' else None
    request = urllib.request.Request(url, data=data, headers=headers, method=method)
    with urllib.request.urlopen(request) as response:
        raw = response.read().decode('utf-8')
        payload = json.loads(raw) if 'application/json' in response.headers.get('Content-Type', '') else raw
    mapping = CONFIG.get('responseMapping') or {}
    mapped = {key: _lookup(payload, path) for key, path in mapping.items()} if mapping else payload
    return {
        'success': 200 <= response.status < 300,
        'integration_id': capability,
        'status': response.status,
        'data': mapped,
        'raw_response': payload,
    }
"""

FAILURE_BODY = """

def main(error=None):
    return {
        'success': False,
        'error': str(error) if error is not None else None,
        'workflow': WORKFLOW,
    }
"""

TEMPLATE_KINDS: Dict[str, str] = {
    "prompt": "AI prompt",
    "tool": "Tool",
    "logic": "Logic",
    "memory": "Memory",
    "integration": "Integration",
}

_LABEL_UNSAFE = re.compile(r"[\x00-\x1f\x7f]+")


def sanitize_label(label: str) -> str:
    """Collapse control characters so a label can sit inside a comment line."""
    return _LABEL_UNSAFE.sub(" ", label or "").strip() or "unnamed"


def _literal(value: Any) -> str:
    return repr(json.dumps(value, sort_keys=True, ensure_ascii=True))


_BODIES: Dict[str, Callable[[Mapping[str, Any]], str]] = {
    "prompt": lambda config: PROMPT_BODY,
    "tool": lambda config: HTTP_TOOL_BODY if config.get("service") == "http" else GENERIC_TOOL_BODY,
    "logic": lambda config: LOGIC_BODY,
    "memory": lambda config: MEMORY_BODY,
    "integration": lambda config: INTEGRATION_BODY,
}


def has_template(type_id: str) -> bool:
    return type_id in _BODIES


def render_module(type_id: str, resolved_config: Mapping[str, Any], label: str) -> str:
    """
    Render the Python source of one generated module.

    Pure: the same arguments always give the same text.
    """

    try:
        body = _BODIES[type_id](resolved_config)
    except KeyError as exc:
        raise KeyError(f"No script template for node type '{type_id}'") from exc
    header = HEADER.format(
        kind=TEMPLATE_KINDS[type_id],
        label=sanitize_label(label),
        config_literal=_literal(dict(resolved_config)),
    )
    return header + body


def render_failure_module(agent_name: str) -> str:
    return (
        "# Failure handler\n"
        "# Generated by AgentFlow. Edit the workflow, not this file.\n\n"
        "import json\n\n"
        f"WORKFLOW = json.loads({_literal(agent_name)})\n" + FAILURE_BODY
    )

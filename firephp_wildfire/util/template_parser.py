from jinja2 import Environment, select_autoescape

env = Environment(autoescape=select_autoescape(default_for_string=True))


def shorten(s, length=200, end='...'):
    s = str(s)
    if len(s) <= length:
        return s
    return s[:length - len(end)] + end


env.filters['shorten'] = shorten


def template_parse(template, params):
    t = env.from_string(template)
    o = t.render(params)
    return o

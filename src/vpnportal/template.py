import json


class Renderer(object):

    def render(self, template_name: str, variables: dict) -> str:
        """
        Render a template.

        :param template_name: The name of the template, without extension
        :param variables: The variables to be used in the template
        :return: The rendered template
        """
        raise NotImplementedError()


class JsonRenderer(Renderer):
    """Renders the template name and its variables as a JSON document."""

    def render(self, template_name: str, variables: dict) -> str:
        _info = {"template": template_name}
        _info.update(variables)
        return json.dumps(_info, sort_keys=True)

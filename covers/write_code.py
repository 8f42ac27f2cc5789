import re
import textwrap


class CodeTemplate:
    def __init__(self, template_text: str):
        # Dedent the template to handle templates defined in indented code
        self.template = textwrap.dedent(template_text).strip("\n")

    def render(self_, **kwargs) -> str:
        """
        Renders the template by substituting placeholders. A placeholder
        alone on its line receives a block, indented like the placeholder;
        any other occurrence is replaced inline. Substituted values are not
        scanned again.
        """
        if not kwargs:
            return self_.template
        keys = "|".join(re.escape(key) for key in kwargs)
        pattern = re.compile(
            f"(?P<block>^(?P<indent>[ \\t]*)\\{{(?P<block_key>{keys})\\}}[ \\t]*$)"
            f"|\\{{(?P<key>{keys})\\}}",
            re.MULTILINE,
        )

        def replacer(match):
            if match.group("block"):
                value = kwargs[match.group("block_key")]
                indent_str = match.group("indent")
                return textwrap.indent(textwrap.dedent(str(value)).strip(), indent_str)
            return str(kwargs[match.group("key")])

        return pattern.sub(replacer, self_.template)


class WriteCode:
    """Line-oriented writer of generated source files."""

    def __init__(self):
        self.indent = " " * 4
        self.base_level = 0
        self.output = None

    def useStream(self, stream):
        self.output = stream

    def createFile(self, filename):
        self.output = open(filename, "w", encoding="utf-8")

    def close(self):
        if not self.output:
            return
        self.output.close()
        self.output = None

    def indentLine(self, level, text):
        return self.indent * (self.base_level + level) + text

    def write(self, level, text):
        line = self.indentLine(level, text) if text else ""
        self.output.write(line + "\n")

    def write_source(self, text: str):
        """Write a module source as is, ending with a newline."""
        self.output.write(text)
        if text and not text.endswith("\n"):
            self.output.write("\n")

import logging
import os
import re
from pathlib import Path
from typing import Dict, List, Optional

from ..models import (
	JavaFileFacts,
	JavaFunctionalExpr,
	JavaInvocation,
	JavaMethodDecl,
	JavaTypeDecl,
	Receiver,
	SourceLocation,
	TargetHint,
)

logger = logging.getLogger(__name__)

TYPE_DECLARATIONS = {
	"class_declaration": "class",
	"interface_declaration": "interface",
	"enum_declaration": "enum",
	"record_declaration": "record",
	"annotation_type_declaration": "annotation",
}
METHOD_DECLARATIONS = ("method_declaration", "constructor_declaration")
TYPE_BODIES = ("class_body", "interface_body", "enum_body", "annotation_type_body")
COMMENT_TYPES = ("line_comment", "block_comment")

# {@link Type#method(A, B)} and @see Type#method
DOC_REFERENCE = re.compile(r"(?:\{@link(?:plain)?|@see)\s+([\w.$]*)#(\w+)(\(([^)]*)\))?")

# Literal node types and the static type they carry
LITERAL_TYPES = {
	"string_literal": "String",
	"text_block": "String",
	"character_literal": "char",
	"true": "boolean",
	"false": "boolean",
	"null_literal": "null",
}
INTEGER_LITERALS = ("decimal_integer_literal", "hex_integer_literal", "octal_integer_literal", "binary_integer_literal")
FLOAT_LITERALS = ("decimal_floating_point_literal", "hex_floating_point_literal")
BOOLEAN_OPERATORS = ("==", "!=", "<", ">", "<=", ">=", "&&", "||")

# Marks a variable declared without a usable type (inferred lambda parameter)
_UNTYPED = object()


class TreeSitterJavaAnalyzer:
	def __init__(self, file_path: str, content: str, repo_path: str = None):
		self.file_path = Path(file_path)
		self.content = content
		self.repo_path = repo_path or ""
		self.facts = JavaFileFacts(file_path=str(self.file_path), relative_path=self._get_relative_path())
		self._types: Dict[str, JavaTypeDecl] = {}
		self._anonymous_counters: Dict[str, int] = {}
		self._analyze()

	def _get_relative_path(self) -> str:
		"""Get relative path from repo root."""
		if self.repo_path:
			try:
				return os.path.relpath(str(self.file_path), self.repo_path)
			except ValueError:
				return str(self.file_path)
		else:
			return str(self.file_path)

	def _analyze(self):
		from ..setup_parser import new_parser
		parser = new_parser("java")
		if parser is None:
			logger.warning("Java parser not available")
			return

		tree = parser.parse(bytes(self.content, "utf8"))
		self.root_node = tree.root_node

		self._extract_header(self.root_node)
		self._visit(self.root_node, None, None)
		logger.debug(
			f"{self.facts.relative_path}: {len(self.facts.types)} types, {len(self.facts.methods)} methods, "
			f"{len(self.facts.invocations)} invocations, {len(self.facts.functional_exprs)} functional expressions"
		)

	def _extract_header(self, root):
		for child in root.children:
			if child.type == "package_declaration":
				name_node = next((c for c in child.named_children if c.type in ("identifier", "scoped_identifier")), None)
				if name_node:
					self.facts.package = self._text(name_node)
			elif child.type == "import_declaration":
				name_node = next((c for c in child.named_children if c.type in ("identifier", "scoped_identifier")), None)
				if not name_node:
					continue
				name = self._text(name_node)
				is_static = any(c.type == "static" for c in child.children)
				is_wildcard = any(c.type == "asterisk" for c in child.children)
				if is_static:
					self.facts.static_imports.append(f"{name}.*" if is_wildcard else name)
				elif is_wildcard:
					self.facts.wildcard_imports.append(name)
				else:
					self.facts.imports.append(name)

	def _visit(self, node, owner, method_id):
		node_type = node.type

		if node_type in TYPE_DECLARATIONS:
			decl = self._declare_type(node, owner, method_id)
			body = node.child_by_field_name("body")
			if decl and body is not None:
				self._visit_children(body, decl.binary_name, None)
			return

		if node_type in METHOD_DECLARATIONS and owner:
			method = self._declare_method(node, owner)
			self._visit_children(node, owner, method.method_id)
			return

		if node_type == "object_creation_expression":
			self._record_creation(node, owner, method_id)
			return

		if node_type == "enum_constant":
			body = node.child_by_field_name("body")
			arguments = node.child_by_field_name("arguments")
			if arguments is not None:
				self._visit_children(arguments, owner, method_id)
			if body is not None and owner:
				enum_decl = self._types.get(owner)
				decl = self._declare_anonymous(node, body, enum_decl.name if enum_decl else None, owner)
				self._visit_children(body, decl.binary_name, None)
			return

		if node_type == "method_invocation" and owner:
			self.facts.invocations.append(self._invocation_of(node, owner, method_id))
		elif node_type == "explicit_constructor_invocation" and owner:
			self._record_constructor_chaining(node, owner, method_id)
		elif node_type == "method_reference" and owner:
			self._record_method_reference(node, owner, method_id)
		elif node_type == "lambda_expression" and owner:
			self.facts.functional_exprs.append(JavaFunctionalExpr(
				kind="lambda",
				target=self._target_hint(node, owner, method_id),
				owner_binary_name=owner,
				method_id=method_id,
				location=self._location(node),
			))
		elif node_type == "block_comment":
			self._record_doc_comment(node, owner, method_id)

		self._visit_children(node, owner, method_id)

	def _visit_children(self, node, owner, method_id):
		for child in node.children:
			self._visit(child, owner, method_id)

	# Declarations

	def _declare_type(self, node, owner, method_id) -> Optional[JavaTypeDecl]:
		name_node = node.child_by_field_name("name")
		if name_node is None:
			return None
		name = self._text(name_node)
		kind = TYPE_DECLARATIONS[node.type]

		if owner is None:
			binary_name = f"{self.facts.package}.{name}" if self.facts.package else name
			qualified_name = binary_name
		elif method_id is not None:
			# Local class: no qualified name, numbered per simple name like javac does
			binary_name = f"{owner}${self._next_anonymous_index(f'{owner}#{name}')}{name}"
			qualified_name = None
		else:
			binary_name = f"{owner}${name}"
			outer = self._types.get(owner)
			qualified_name = f"{outer.qualified_name}.{name}" if outer and outer.qualified_name else None

		super_class = None
		superclass_node = node.child_by_field_name("superclass")
		if superclass_node is not None:
			super_type = next((c for c in superclass_node.named_children if c.type not in COMMENT_TYPES), None)
			super_class = self._type_text(super_type)

		interfaces = []
		for child in node.children:
			if child.type in ("super_interfaces", "extends_interfaces"):
				for type_list in child.named_children:
					if type_list.type == "type_list":
						interfaces.extend(
							self._type_text(t) for t in type_list.named_children if t.type not in COMMENT_TYPES
						)

		decl = JavaTypeDecl(
			binary_name=binary_name,
			name=name,
			kind=kind,
			qualified_name=qualified_name,
			outer_binary_name=owner,
			super_class=super_class,
			interfaces=interfaces,
			type_parameters=self._type_parameters(node),
			fields=self._fields_of(node),
			location=self._location(node),
		)
		self._types[binary_name] = decl
		self.facts.types.append(decl)
		return decl

	def _declare_anonymous(self, creation_node, body, super_type: Optional[str], owner: str) -> JavaTypeDecl:
		binary_name = f"{owner}${self._next_anonymous_index(owner)}"
		decl = JavaTypeDecl(
			binary_name=binary_name,
			name="",
			kind="class",
			qualified_name=None,
			is_anonymous=True,
			outer_binary_name=owner,
			super_class=super_type,
			fields=self._fields_in_body(body),
			# Spans the whole creation expression, so its enclosing method is
			# the one that instantiates it
			location=self._location(creation_node),
		)
		self._types[binary_name] = decl
		self.facts.types.append(decl)
		return decl

	def _next_anonymous_index(self, owner: str) -> int:
		index = self._anonymous_counters.get(owner, 0) + 1
		self._anonymous_counters[owner] = index
		return index

	def _declare_method(self, node, owner) -> JavaMethodDecl:
		name = self._text(node.child_by_field_name("name"))
		is_constructor = node.type == "constructor_declaration"
		return_type = None if is_constructor else self._type_text(node.child_by_field_name("type"))

		keywords = set()
		modifiers = next((c for c in node.children if c.type == "modifiers"), None)
		if modifiers is not None:
			keywords = {c.type for c in modifiers.children}

		parameter_types = []
		parameters = node.child_by_field_name("parameters")
		if parameters is not None:
			for param in parameters.named_children:
				if param.type == "formal_parameter":
					parameter_types.append(self._type_text(param.child_by_field_name("type")))
				elif param.type == "spread_parameter":
					type_node = next((c for c in param.named_children
									  if c.type not in ("modifiers", "annotation", "marker_annotation", "variable_declarator")
									  and c.type not in COMMENT_TYPES), None)
					parameter_types.append(f"{self._type_text(type_node)}...")

		# The declaration owns its leading Javadoc, like it does in an IDE
		start_byte = node.start_byte
		previous = node.prev_named_sibling
		if previous is not None and previous.type == "block_comment" and self._text(previous).startswith("/**"):
			start_byte = previous.start_byte

		location = self._location(node, start_byte=start_byte)
		method = JavaMethodDecl(
			method_id=f"{owner}#{name}@{node.start_byte}",
			owner_binary_name=owner,
			name=name,
			parameter_types=parameter_types,
			return_type=return_type,
			is_constructor=is_constructor,
			is_abstract="abstract" in keywords or (not is_constructor and node.child_by_field_name("body") is None),
			is_static="static" in keywords,
			type_parameters=self._type_parameters(node),
			location=location,
		)
		self.facts.methods.append(method)
		return method

	def _type_parameters(self, node) -> Dict[str, List[str]]:
		result = {}
		type_parameters = node.child_by_field_name("type_parameters")
		if type_parameters is None:
			return result
		for param in type_parameters.named_children:
			if param.type != "type_parameter":
				continue
			name_node = next((c for c in param.named_children if c.type in ("type_identifier", "identifier")), None)
			if name_node is None:
				continue
			bounds = []
			bound_node = next((c for c in param.named_children if c.type == "type_bound"), None)
			if bound_node is not None:
				bounds = [self._type_text(b) for b in bound_node.named_children if b.type not in COMMENT_TYPES]
			result[self._text(name_node)] = bounds
		return result

	def _fields_of(self, node) -> Dict[str, str]:
		fields = {}
		if node.type == "record_declaration":
			parameters = node.child_by_field_name("parameters")
			if parameters is not None:
				for param in parameters.named_children:
					if param.type == "formal_parameter":
						name_node = param.child_by_field_name("name")
						if name_node is not None:
							fields[self._text(name_node)] = self._type_text(param.child_by_field_name("type"))
		body = node.child_by_field_name("body")
		if body is not None:
			fields.update(self._fields_in_body(body))
		return fields

	def _fields_in_body(self, body) -> Dict[str, str]:
		fields = {}
		for child in body.named_children:
			if child.type == "enum_body_declarations":
				fields.update(self._fields_in_body(child))
			elif child.type in ("field_declaration", "constant_declaration"):
				type_text = self._type_text(child.child_by_field_name("type"))
				for declarator in child.children_by_field_name("declarator"):
					name_node = declarator.child_by_field_name("name")
					if name_node is not None:
						fields[self._text(name_node)] = type_text
		return fields

	# Invocations

	def _invocation_of(self, node, owner, method_id) -> JavaInvocation:
		obj = node.child_by_field_name("object")
		return JavaInvocation(
			kind="call",
			name=self._text(node.child_by_field_name("name")),
			arg_count=self._argument_count(node.child_by_field_name("arguments")),
			receiver=self._receiver_of(obj) if obj is not None else None,
			owner_binary_name=owner,
			method_id=method_id,
			location=self._location(node),
			arg_types=self._argument_types(node.child_by_field_name("arguments")),
		)

	def _record_creation(self, node, owner, method_id):
		type_text = self._type_text(node.child_by_field_name("type"))
		arguments = node.child_by_field_name("arguments")
		body = next((c for c in node.children if c.type == "class_body"), None)

		if owner and type_text:
			self.facts.invocations.append(JavaInvocation(
				kind="new",
				name=self._simple_name(type_text),
				arg_count=self._argument_count(arguments),
				receiver=Receiver("type_text", type_text),
				owner_binary_name=owner,
				method_id=method_id,
				location=self._location(node),
				arg_types=self._argument_types(arguments),
			))

		for child in node.children:
			if child.type != "class_body":
				self._visit(child, owner, method_id)

		if body is not None and owner:
			decl = self._declare_anonymous(node, body, type_text, owner)
			self._visit_children(body, decl.binary_name, None)

	def _record_constructor_chaining(self, node, owner, method_id):
		# this(...) calls a sibling constructor, super(...) the superclass one
		decl = self._types.get(owner)
		target = next((c for c in node.children if c.type in ("this", "super")), None)
		if decl is None or target is None:
			return
		if target.type == "this":
			type_text = decl.name
			receiver = Receiver("this")
		else:
			type_text = decl.super_class
			receiver = Receiver("super")
		if not type_text:
			return
		self.facts.invocations.append(JavaInvocation(
			kind="new",
			name=self._simple_name(type_text),
			arg_count=self._argument_count(node.child_by_field_name("arguments")),
			receiver=receiver,
			owner_binary_name=owner,
			method_id=method_id,
			location=self._location(node),
			arg_types=self._argument_types(node.child_by_field_name("arguments")),
		))

	def _record_method_reference(self, node, owner, method_id):
		named = [c for c in node.named_children if c.type not in COMMENT_TYPES and c.type != "type_arguments"]
		if not named:
			return
		qualifier = named[0]
		last = node.children[-1]
		location = self._location(node)

		if last.type == "new":
			type_text = self._type_text(qualifier)
			self.facts.invocations.append(JavaInvocation(
				kind="new",
				name=self._simple_name(type_text),
				arg_count=None,
				receiver=Receiver("type_text", type_text),
				owner_binary_name=owner,
				method_id=method_id,
				location=location,
			))
		elif last.type == "identifier" and len(named) > 1:
			self.facts.invocations.append(JavaInvocation(
				kind="method_ref",
				name=self._text(last),
				arg_count=None,
				receiver=self._receiver_of(qualifier),
				owner_binary_name=owner,
				method_id=method_id,
				location=location,
			))

		self.facts.functional_exprs.append(JavaFunctionalExpr(
			kind="method_ref",
			target=self._target_hint(node, owner, method_id),
			owner_binary_name=owner,
			method_id=method_id,
			location=location,
		))

	def _record_doc_comment(self, node, owner, method_id):
		text = self._text(node)
		if not text.startswith("/**"):
			return
		location = self._location(node)
		self.facts.doc_comments.append(location)
		if not owner:
			return
		for match in DOC_REFERENCE.finditer(text):
			type_text, name, params = match.group(1), match.group(2), match.group(4)
			arg_types = None
			if match.group(3) is None:
				arg_count = None
			else:
				arg_types = [p.split()[0] for p in params.split(",") if p.strip()]
				arg_count = len(arg_types)
			self.facts.invocations.append(JavaInvocation(
				kind="doc",
				name=name,
				arg_count=arg_count,
				receiver=Receiver("type_text", type_text) if type_text else None,
				owner_binary_name=owner,
				method_id=method_id,
				location=location,
				arg_types=arg_types,
			))

	def _argument_count(self, arguments) -> int:
		if arguments is None:
			return 0
		return len([c for c in arguments.named_children if c.type not in COMMENT_TYPES])

	def _argument_types(self, arguments) -> List[Optional[str]]:
		if arguments is None:
			return []
		return [self._expression_type(c) for c in arguments.named_children if c.type not in COMMENT_TYPES]

	def _expression_type(self, node) -> Optional[str]:
		"""Type of an argument expression when it can be read without inference."""
		node_type = node.type
		if node_type in LITERAL_TYPES:
			return LITERAL_TYPES[node_type]
		if node_type in INTEGER_LITERALS:
			return "long" if self._text(node).endswith(("l", "L")) else "int"
		if node_type in FLOAT_LITERALS:
			return "float" if self._text(node).endswith(("f", "F")) else "double"
		if node_type == "identifier":
			declared = self._find_variable_type(node, self._text(node))
			return declared if isinstance(declared, str) else None
		if node_type == "field_access":
			obj = node.child_by_field_name("object")
			field_node = node.child_by_field_name("field")
			if obj is not None and field_node is not None and obj.type == "this":
				return self._find_field_type(node, self._text(field_node))
			return None
		if node_type == "object_creation_expression":
			return self._type_text(node.child_by_field_name("type"))
		if node_type == "cast_expression":
			return self._type_text(node.child_by_field_name("type"))
		if node_type == "parenthesized_expression":
			inner = next((c for c in node.named_children if c.type not in COMMENT_TYPES), None)
			return self._expression_type(inner) if inner is not None else None
		if node_type == "instanceof_expression":
			return "boolean"
		if node_type == "unary_expression":
			operator = node.child_by_field_name("operator")
			if operator is not None and self._text(operator) == "!":
				return "boolean"
			operand = node.child_by_field_name("operand")
			return self._expression_type(operand) if operand is not None else None
		if node_type == "binary_expression":
			operator = node.child_by_field_name("operator")
			if operator is None:
				return None
			if self._text(operator) in BOOLEAN_OPERATORS:
				return "boolean"
			if self._text(operator) == "+":
				sides = [node.child_by_field_name("left"), node.child_by_field_name("right")]
				if any(side is not None and self._expression_type(side) == "String" for side in sides):
					return "String"
		return None

	# Receivers and variable types

	def _receiver_of(self, node) -> Receiver:
		node_type = node.type
		if node_type == "identifier":
			name = self._text(node)
			declared = self._find_variable_type(node, name)
			if declared is _UNTYPED:
				return Receiver("unknown")
			if declared:
				return Receiver("type_text", declared)
			return Receiver("name", name)
		if node_type == "this":
			return Receiver("this")
		if node_type == "super":
			return Receiver("super")
		if node_type == "field_access":
			obj = node.child_by_field_name("object")
			field_node = node.child_by_field_name("field")
			if obj is not None and field_node is not None and obj.type == "this":
				name = self._text(field_node)
				declared = self._find_field_type(node, name)
				return Receiver("type_text", declared) if declared else Receiver("name", name)
			if self._is_qualified_name(node):
				return Receiver("type_text", self._text(node))
			return Receiver("unknown")
		if node_type == "method_invocation":
			return Receiver("call", invocation=self._invocation_of(node, None, None))
		if node_type == "object_creation_expression":
			return Receiver("new", self._type_text(node.child_by_field_name("type")))
		if node_type == "parenthesized_expression":
			inner = next((c for c in node.named_children if c.type not in COMMENT_TYPES), None)
			return self._receiver_of(inner) if inner is not None else Receiver("unknown")
		if node_type == "cast_expression":
			return Receiver("type_text", self._type_text(node.child_by_field_name("type")))
		if node_type in ("type_identifier", "scoped_type_identifier", "generic_type", "scoped_identifier"):
			return Receiver("type_text", self._type_text(node))
		return Receiver("unknown")

	def _is_qualified_name(self, node) -> bool:
		"""``com.acme.Util`` style field access made only of identifiers."""
		if node.type == "identifier":
			return self._find_variable_type(node, self._text(node)) is None
		if node.type != "field_access":
			return False
		obj = node.child_by_field_name("object")
		field_node = node.child_by_field_name("field")
		return obj is not None and field_node is not None and field_node.type == "identifier" and self._is_qualified_name(obj)

	def _find_variable_type(self, node, name):
		current = node
		while current.parent is not None:
			parent = current.parent
			parent_type = parent.type
			found = None

			if parent_type in ("block", "constructor_body", "switch_block_statement_group", "switch_rule"):
				found = self._declared_in_statements(parent, name)
			elif parent_type == "lambda_expression":
				found = self._lambda_parameter_type(parent, name)
			elif parent_type in METHOD_DECLARATIONS:
				found = self._parameter_type(parent.child_by_field_name("parameters"), name)
			elif parent_type == "for_statement":
				found = self._declared_in_statements(parent, name)
			elif parent_type == "enhanced_for_statement":
				name_node = parent.child_by_field_name("name")
				if name_node is not None and self._text(name_node) == name:
					found = self._type_text(parent.child_by_field_name("type")) or _UNTYPED
			elif parent_type == "catch_clause":
				param = next((c for c in parent.named_children if c.type == "catch_formal_parameter"), None)
				if param is not None:
					name_node = param.child_by_field_name("name")
					catch_type = next((c for c in param.named_children if c.type == "catch_type"), None)
					if name_node is not None and self._text(name_node) == name:
						first = catch_type.named_children[0] if catch_type is not None and catch_type.named_children else None
						found = self._type_text(first) if first is not None else _UNTYPED
			elif parent_type == "try_with_resources_statement":
				resources = parent.child_by_field_name("resources")
				if resources is not None:
					for resource in resources.named_children:
						name_node = resource.child_by_field_name("name")
						if name_node is not None and self._text(name_node) == name:
							found = self._type_text(resource.child_by_field_name("type")) or _UNTYPED
			elif parent_type in TYPE_BODIES:
				found = self._fields_in_body(parent).get(name)

			if found:
				return found
			current = parent
		return None

	def _find_field_type(self, node, name):
		current = node.parent
		while current is not None:
			if current.type in TYPE_BODIES:
				return self._fields_in_body(current).get(name)
			current = current.parent
		return None

	def _declared_in_statements(self, block, name):
		for child in block.named_children:
			if child.type != "local_variable_declaration":
				continue
			type_node = child.child_by_field_name("type")
			for declarator in child.children_by_field_name("declarator"):
				name_node = declarator.child_by_field_name("name")
				if name_node is None or self._text(name_node) != name:
					continue
				type_text = self._type_text(type_node)
				if type_text == "var":
					value = declarator.child_by_field_name("value")
					if value is not None and value.type == "object_creation_expression":
						return self._type_text(value.child_by_field_name("type"))
					return _UNTYPED
				return type_text
		return None

	def _lambda_parameter_type(self, lambda_node, name):
		params = lambda_node.child_by_field_name("parameters")
		if params is None:
			return None
		if params.type == "identifier":
			return _UNTYPED if self._text(params) == name else None
		if params.type == "inferred_parameters":
			if any(self._text(c) == name for c in params.named_children):
				return _UNTYPED
			return None
		return self._parameter_type(params, name)

	def _parameter_type(self, parameters, name):
		if parameters is None:
			return None
		for param in parameters.named_children:
			if param.type == "formal_parameter":
				name_node = param.child_by_field_name("name")
				if name_node is not None and self._text(name_node) == name:
					return self._type_text(param.child_by_field_name("type")) or _UNTYPED
			elif param.type == "spread_parameter":
				declarator = next((c for c in param.named_children if c.type == "variable_declarator"), None)
				name_node = declarator.child_by_field_name("name") if declarator is not None else None
				if name_node is not None and self._text(name_node) == name:
					return _UNTYPED
		return None

	# Functional expression targets

	def _target_hint(self, node, owner, method_id) -> Optional[TargetHint]:
		current = node
		parent = node.parent
		while parent is not None and parent.type == "parenthesized_expression":
			current, parent = parent, parent.parent
		if parent is None:
			return None

		parent_type = parent.type
		if parent_type == "variable_declarator":
			declaration = parent.parent
			if declaration is not None:
				type_text = self._type_text(declaration.child_by_field_name("type"))
				if type_text and type_text != "var":
					return TargetHint("type_text", type_text)
			return None
		if parent_type == "cast_expression":
			return TargetHint("type_text", self._type_text(parent.child_by_field_name("type")))
		if parent_type == "return_statement":
			ancestor = parent.parent
			while ancestor is not None:
				if ancestor.type == "lambda_expression":
					return None
				if ancestor.type == "method_declaration":
					return TargetHint("type_text", self._type_text(ancestor.child_by_field_name("type")))
				ancestor = ancestor.parent
			return None
		if parent_type == "assignment_expression":
			left = parent.child_by_field_name("left")
			if left is not None:
				receiver = self._receiver_of(left)
				if receiver.kind == "type_text":
					return TargetHint("type_text", receiver.text)
			return None
		if parent_type == "argument_list":
			arguments = [c for c in parent.named_children if c.type not in COMMENT_TYPES]
			position = next((i for i, c in enumerate(arguments) if c == current), 0)
			call = parent.parent
			if call is None:
				return None
			if call.type == "method_invocation":
				return TargetHint("argument", invocation=self._invocation_of(call, owner, method_id), position=position)
			if call.type == "object_creation_expression":
				type_text = self._type_text(call.child_by_field_name("type"))
				invocation = JavaInvocation(
					kind="new",
					name=self._simple_name(type_text),
					arg_count=len(arguments),
					receiver=Receiver("type_text", type_text),
					owner_binary_name=owner,
					method_id=method_id,
					location=self._location(call),
					arg_types=[self._expression_type(a) for a in arguments],
				)
				return TargetHint("argument", invocation=invocation, position=position)
		return None

	# Helpers

	def _text(self, node) -> str:
		return node.text.decode("utf8") if node is not None else ""

	def _type_text(self, node) -> Optional[str]:
		"""Type as written, whitespace collapsed, annotations dropped."""
		if node is None:
			return None
		if node.type == "annotated_type":
			inner = next((c for c in node.named_children
						  if c.type not in ("annotation", "marker_annotation") and c.type not in COMMENT_TYPES), None)
			return self._type_text(inner)
		text = " ".join(self._text(node).split())
		return text.replace("< ", "<").replace(" >", ">")

	@staticmethod
	def _simple_name(type_text: Optional[str]) -> str:
		if not type_text:
			return ""
		return type_text.split("<")[0].strip().split(".")[-1]

	def _location(self, node, start_byte: int = None) -> SourceLocation:
		return SourceLocation(
			file_path=str(self.file_path),
			start_line=node.start_point[0] + 1,
			start_byte=node.start_byte if start_byte is None else start_byte,
			end_byte=node.end_byte,
		)


def analyze_java_file(file_path: str, content: str, repo_path: str = None) -> JavaFileFacts:
	analyzer = TreeSitterJavaAnalyzer(file_path, content, repo_path)
	return analyzer.facts

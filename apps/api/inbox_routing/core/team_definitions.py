"""Default team (macrosetor) definitions: routing metadata, keywords and funnels."""

from __future__ import annotations


# Stage colors
BLUE = "#3B82F6"
PURPLE = "#A855F7"
ORANGE = "#F97316"
YELLOW = "#EAB308"
GREEN = "#22C55E"
DARK_GREEN = "#16A34A"
RED = "#EF4444"
DARK_RED = "#DC2626"
GRAY = "#6B7280"


def _stages(*stages: tuple[str, str, str]) -> list[dict[str, object]]:
    return [
        {"id": stage_id, "name": name, "color": color, "order": order}
        for order, (stage_id, name, color) in enumerate(stages, start=1)
    ]


# Declaration order matters: the classifier breaks keyword-count ties by it.
DEFAULT_TEAMS: list[dict[str, object]] = [
    {
        "category": "comercial",
        "name": "Comercial",
        "color": "#2563EB",
        "max_capacity": 50,
        "priority": 1,
        "keywords": [
            "curso", "matrícula", "inscrição", "valor", "qual o valor", "preço",
            "mensalidade", "desconto", "promoção", "oferta", "comprar",
            "quanto custa", "investimento", "tenho interesse", "quero saber mais",
            "orçamento", "proposta",
        ],
        "funnel": {
            "id": "funnel_comercial",
            "name": "Funil Comercial",
            "stages": _stages(
                ("prospecting", "Prospecção", BLUE),
                ("qualified", "Qualificado", PURPLE),
                ("proposal", "Proposta", ORANGE),
                ("negotiation", "Negociação", YELLOW),
                ("closed_won", "Fechado Ganho", GREEN),
                ("closed_lost", "Fechado Perdido", RED),
            ),
        },
    },
    {
        "category": "suporte",
        "name": "Suporte",
        "color": "#7C3AED",
        "max_capacity": 30,
        "priority": 2,
        "keywords": [
            "problema", "erro", "não funciona", "bug", "falha", "ajuda",
            "suporte", "não consigo", "travou", "lento", "não carrega",
            "senha", "login", "acesso", "recuperar",
        ],
        "funnel": {
            "id": "funnel_suporte",
            "name": "Funil Suporte",
            "stages": _stages(
                ("solicitacao", "Solicitação", BLUE),
                ("em_analise", "Em Análise", PURPLE),
                ("em_andamento", "Em Andamento", ORANGE),
                ("aguardando_cliente", "Aguardando Cliente", YELLOW),
                ("resolvido", "Resolvido", GREEN),
                ("fechado", "Fechado", GRAY),
            ),
        },
    },
    {
        "category": "cobranca",
        "name": "Cobrança",
        "color": "#DC2626",
        "max_capacity": 30,
        "priority": 3,
        "keywords": [
            "em atraso", "atrasado", "inadimplência", "renegociação",
            "renegociar", "dívida", "juros", "multa", "acordo",
        ],
        "funnel": {
            "id": "funnel_cobranca",
            "name": "Funil Cobrança",
            "stages": _stages(
                ("inadimplente", "Inadimplente", RED),
                ("primeiro_contato", "Primeiro Contato", ORANGE),
                ("negociando", "Negociando", YELLOW),
                ("acordo_feito", "Acordo Feito", BLUE),
                ("pagamento_efetuado", "Pagamento Efetuado", GREEN),
                ("cobranca_juridica", "Cobrança Jurídica", DARK_RED),
            ),
        },
    },
    {
        "category": "tutoria",
        "name": "Tutoria",
        "color": "#0891B2",
        "max_capacity": 40,
        "priority": 4,
        "keywords": [
            "dúvida", "exercício", "questão", "matéria", "conteúdo",
            "disciplina", "professor", "tutor", "explicação", "aula",
            "apostila", "prova", "atividade",
        ],
        "funnel": {
            "id": "funnel_tutoria",
            "name": "Funil Tutoria",
            "stages": _stages(
                ("nova_solicitacao", "Nova Solicitação", BLUE),
                ("atribuido", "Atribuído", PURPLE),
                ("em_andamento", "Em Andamento", ORANGE),
                ("aguardando_aluno", "Aguardando Aluno", YELLOW),
                ("resolvido", "Resolvido", GREEN),
                ("fechado", "Fechado", GRAY),
            ),
        },
    },
    {
        "category": "secretaria",
        "name": "Secretaria",
        "color": "#059669",
        "max_capacity": 40,
        "priority": 5,
        "keywords": [
            "certificado", "diploma", "declaração", "histórico", "documento",
            "horário", "endereço", "localização", "onde fica", "agendar",
            "agendamento", "rematrícula", "transferência", "secretaria",
            "protocolo",
        ],
        "funnel": {
            "id": "funnel_secretaria",
            "name": "Funil Secretaria",
            "stages": _stages(
                ("documentos_pendentes", "Documentos Pendentes", BLUE),
                ("em_analise", "Em Análise", PURPLE),
                ("processando", "Processando", ORANGE),
                ("aprovado", "Aprovado", GREEN),
                ("matriculado", "Matriculado", DARK_GREEN),
                ("concluido", "Concluído", GRAY),
            ),
        },
    },
    {
        "category": "financeiro",
        "name": "Financeiro",
        "color": "#CA8A04",
        "max_capacity": 30,
        "priority": 6,
        "keywords": [
            "boleto", "fatura", "pagamento", "segunda via", "nota fiscal",
            "reembolso", "estorno", "parcelamento", "cobrança", "comprovante",
            "recibo", "vencimento",
        ],
        "funnel": {
            "id": "funnel_financeiro",
            "name": "Funil Financeiro",
            "stages": _stages(
                ("solicitacao_recebida", "Solicitação Recebida", BLUE),
                ("em_analise", "Em Análise", PURPLE),
                ("processando", "Processando", ORANGE),
                ("aprovado", "Aprovado", GREEN),
                ("negado", "Negado", RED),
                ("concluido", "Concluído", GRAY),
            ),
        },
    },
    {
        "category": "secretaria_pos",
        "name": "Secretaria Pós-Graduação",
        "color": "#4F46E5",
        "max_capacity": 30,
        "priority": 7,
        "keywords": [
            "pós-graduação", "especialização", "mestrado", "doutorado",
            "tcc", "dissertação", "formatura", "colação",
        ],
        "funnel": {
            "id": "funnel_secretaria_pos",
            "name": "Funil Secretaria Pós",
            "stages": _stages(
                ("documentos_pendentes", "Documentos Pendentes", BLUE),
                ("verificacao_requisitos", "Verificação de Requisitos", PURPLE),
                ("processando", "Processando", ORANGE),
                ("pronto_formatura", "Pronto para Formatura", GREEN),
                ("formado", "Formado", DARK_GREEN),
            ),
        },
    },
]

"""
Prompts and structured response models for the Performance Max assistant.

Responses are validated through instructor against the Pydantic models
below; the prompts only carry the domain guidance.
"""

from typing import Optional

from pydantic import BaseModel, Field


# Google Ads text asset limits
HEADLINE_MAX_LENGTH = 30
DESCRIPTION_MAX_LENGTH = 90


# =============================================================================
# Pydantic Models for Structured Outputs
# =============================================================================

class MetricAssessment(BaseModel):
    value: float = Field(default=0, description="Metric value analyzed")
    status: str = Field(description="critical, warning, good or excellent")
    analysis: str = Field(description="Short analysis of the metric")
    recommendation: str = Field(description="What to do about it")


class DiagnosisIssue(BaseModel):
    severity: str = Field(description="critical, high, medium or low")
    category: str = Field(description="budget, assets, targeting, bidding or quality")
    title: str
    description: str
    impact: str = Field(default="", description="Estimated impact of the problem")
    recommendation: str
    estimated_impact: str = Field(default="", description="Expected result of the fix")


class ImpressionLossAnalysis(BaseModel):
    total_loss: float = Field(default=0, description="Total impression share lost (%)")
    primary_cause: str = Field(description="budget or rank")
    analysis: str
    recommendations: list[str] = Field(default_factory=list)


class BudgetRecommendation(BaseModel):
    current_budget: float = 0
    recommended_budget: float = 0
    action: str = Field(description="increase, decrease or maintain")
    percentage_change: float = 0
    rationale: str


class AssetGroupRecommendation(BaseModel):
    group_name: str
    status: str = ""
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    priority: int = Field(default=3, ge=1, le=5)


class PrioritizedAction(BaseModel):
    """A concrete optimization step, 1 being the most urgent."""
    priority: int = Field(ge=1, description="1 = most urgent")
    action: str
    category: str = Field(default="optimization")
    expected_impact: str = ""
    effort: str = Field(default="medium", description="low, medium or high")
    timeframe: str = Field(default="", description="imediato, curto prazo or médio prazo")


class CampaignDiagnosis(BaseModel):
    """Full diagnosis of a Performance Max campaign."""
    overall_score: int = Field(ge=0, le=100, description="Overall health score 0-100")
    overall_status: str = Field(description="critical, needs_attention, good or excellent")
    summary: str = Field(description="Executive summary in 2-3 sentences")
    metrics_analysis: dict[str, MetricAssessment] = Field(
        default_factory=dict,
        description="Assessment keyed by roas, cpa, ctr, cvr and impression_share",
    )
    issues: list[DiagnosisIssue] = Field(default_factory=list)
    impression_loss_analysis: Optional[ImpressionLossAnalysis] = None
    budget_recommendation: Optional[BudgetRecommendation] = None
    asset_group_recommendations: list[AssetGroupRecommendation] = Field(default_factory=list)
    prioritized_actions: list[PrioritizedAction] = Field(default_factory=list)


class ImageIdea(BaseModel):
    concept: str
    description: str
    format: str = Field(description="quadrado, paisagem or retrato")
    elements: list[str] = Field(default_factory=list)
    mood: str = ""
    colors: list[str] = Field(default_factory=list)


class VideoIdea(BaseModel):
    concept: str
    duration: str = ""
    scenes: list[str] = Field(default_factory=list)
    call_to_action: str = ""


class SeasonalSuggestion(BaseModel):
    event: str
    date: str
    headlines: list[str] = Field(default_factory=list)
    description: str = ""
    image_idea: str = ""


class AdVariation(BaseModel):
    name: str
    theme: str = ""
    target_audience: str = ""
    headline1: str
    headline2: str = ""
    headline3: str = ""
    description1: str
    description2: str = ""
    suggested_cta: str = ""


class AdSuggestions(BaseModel):
    """Complete creative package for a Performance Max asset group."""
    headlines: list[str] = Field(description="15 unique headlines of up to 30 characters")
    descriptions: list[str] = Field(description="4 descriptions of up to 90 characters")
    call_to_actions: list[str] = Field(default_factory=list, description="5 different CTAs")
    image_ideas: list[ImageIdea] = Field(default_factory=list)
    video_ideas: list[VideoIdea] = Field(default_factory=list)
    seasonal_suggestions: list[SeasonalSuggestion] = Field(default_factory=list)
    ad_variations: list[AdVariation] = Field(default_factory=list, description="Exactly 5 variations")


class HeadlineSuggestions(BaseModel):
    headlines: list[str] = Field(description="Headlines of up to 30 characters")


class DescriptionSuggestions(BaseModel):
    descriptions: list[str] = Field(description="Descriptions of up to 90 characters")


class RewriteSuggestion(BaseModel):
    content: str
    strategy: str
    rationale: str


class AssetRewrite(BaseModel):
    original_content: str
    original_type: str = Field(description="headline or description")
    performance_label: str = ""
    suggestions: list[RewriteSuggestion] = Field(description="3 alternative versions")


class AssetRewriteResponse(BaseModel):
    rewrites: list[AssetRewrite] = Field(default_factory=list)
    general_tips: list[str] = Field(default_factory=list)


class ScoredFeedback(BaseModel):
    score: int = Field(ge=1, le=10)
    feedback: str
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)


class PmaxCompatibility(BaseModel):
    square_format: str = ""
    landscape_format: str = ""
    portrait_format: str = ""
    small_size_readability: str = ""
    issues: list[str] = Field(default_factory=list)


class ComplianceCheck(BaseModel):
    is_compliant: bool
    issues: list[str] = Field(default_factory=list)
    text_percentage: str = ""


class ImageImprovement(BaseModel):
    priority: str = Field(description="alta, média or baixa")
    suggestion: str
    rationale: str = ""


class ImageAnalysis(BaseModel):
    """Creative review of an ad image."""
    overall_score: int = Field(ge=1, le=10)
    overall_assessment: str = Field(description="excelente, boa, regular or precisa melhorar")
    composition: ScoredFeedback
    brand_consistency: Optional[ScoredFeedback] = None
    pmax_compatibility: Optional[PmaxCompatibility] = None
    google_ads_compliance: Optional[ComplianceCheck] = None
    improvements: list[ImageImprovement] = Field(default_factory=list)
    alternative_versions: list[str] = Field(default_factory=list)


class TestVariation(BaseModel):
    id: int
    name: str
    approach: str
    headline1: str
    headline2: str = ""
    headline3: str = ""
    description1: str
    description2: str = ""
    expected_strength: str = ""
    test_hypothesis: str = ""


class TestingRecommendations(BaseModel):
    duration: str = ""
    min_budget: str = ""
    success_metric: str = ""
    tips: list[str] = Field(default_factory=list)


class AdVariationsResponse(BaseModel):
    variations: list[TestVariation] = Field(description="5 variations for A/B testing")
    testing_recommendations: Optional[TestingRecommendations] = None


class AssetGroupSuggestion(BaseModel):
    asset_group_name: str
    new_headlines: list[str] = Field(default_factory=list)
    new_descriptions: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)


class AssetAnalysisSuggestions(BaseModel):
    suggestions: list[AssetGroupSuggestion] = Field(default_factory=list)


class CampaignAdSuggestions(BaseModel):
    """New ads for an existing campaign."""
    headlines: list[str] = Field(description="10 headlines of up to 30 characters")
    descriptions: list[str] = Field(description="4 descriptions of up to 90 characters")
    call_to_actions: list[str] = Field(default_factory=list, description="5 short CTAs")


# =============================================================================
# Prompt Templates
# =============================================================================

CAMPAIGN_DIAGNOSIS_PROMPT = """Você é um especialista em Google Ads Performance Max com mais de 10 anos de experiência.
Sua tarefa é analisar dados de campanhas PMax e fornecer diagnósticos precisos e acionáveis.

DIRETRIZES DE ANÁLISE:

1. MÉTRICAS DE REFERÊNCIA (benchmarks):
   - ROAS mínimo aceitável: 2.0x (ideal > 4.0x)
   - CPA: depende do ticket médio, mas geralmente < 20% do valor de venda
   - CTR de pesquisa: > 2% é bom, > 5% é excelente
   - CTR de display: > 0.5% é bom
   - CVR (Taxa de Conversão): > 2% é bom, > 5% é excelente
   - Search Impression Share: > 50% é razoável, > 70% é bom

2. ANÁLISE DE PERDA DE IMPRESSÃO:
   - Lost IS (Budget): indica necessidade de aumentar orçamento
   - Lost IS (Rank): indica necessidade de melhorar qualidade/lances

3. PRIORIZAÇÃO:
   - Problemas críticos: afetam conversões diretamente
   - Problemas importantes: afetam eficiência
   - Melhorias: otimizações incrementais

Liste as ações priorizadas da mais urgente (prioridade 1) para a menos urgente."""

CAMPAIGN_DIAGNOSIS_USER_PROMPT = """Analise a seguinte campanha Performance Max e forneça um diagnóstico completo.

## CAMPANHA
- Nome: {campaign_name}
- Orçamento diário: {budget}
- ROAS alvo: {target_roas}
- CPA alvo: {target_cpa}

## MÉTRICAS DOS ÚLTIMOS {days} DIAS
{metrics}

## ASSET GROUPS ({asset_group_count} grupos)
{asset_groups}

## LISTING GROUPS ({listing_group_count} grupos)
{listing_groups}

## SEARCH TERMS (Top 20 por conversões)
{search_terms}

## ANÁLISE DE PERDA DE IMPRESSÃO
- Parcela de impressões (Search): {impression_share}%
- Perdas por orçamento (Search): {budget_lost_is}%
- Perdas por ranking (Search): {rank_lost_is}%"""

AD_GENERATION_PROMPT = """Você é um copywriter especialista em Google Ads com foco em Performance Max.
Crie anúncios persuasivos que sigam as melhores práticas do Google Ads.

DIRETRIZES PARA HEADLINES (TÍTULOS):
- Máximo 30 caracteres
- Use números quando possível (ex: "50% OFF", "R$99")
- Inclua chamada para ação quando couber
- Use capitalização adequada (Primeira Letra Maiúscula)
- Evite pontuação excessiva
- Varie entre benefícios, promoções e diferenciais

DIRETRIZES PARA DESCRIPTIONS (DESCRIÇÕES):
- Máximo 90 caracteres
- Expanda os benefícios mencionados nos títulos
- Inclua call-to-action claro
- Mencione garantias, frete grátis, parcelamento quando aplicável

DIRETRIZES PARA CALL-TO-ACTION:
- Seja específico: "Compre Agora", "Peça Orçamento", "Agende Visita"
- Crie urgência quando apropriado
- Varie os CTAs entre as variações"""

AD_GENERATION_USER_PROMPT = """Crie anúncios completos para Google Ads Performance Max.

## PRODUTO/SERVIÇO
- Nome: {name}
- Descrição: {description}
- Preço: {price}
- Categoria: {category}
- Benefícios: {benefits}
- Diferenciais: {differentials}

## PÚBLICO-ALVO
- Demografia: {demographics}
- Interesses: {interests}
- Problemas/Dores: {pain_points}

## PALAVRAS-CHAVE PRINCIPAIS
{keywords}

## DATAS SAZONAIS PRÓXIMAS
{seasonal_events}

IMPORTANTE:
- Crie {headline_count} headlines únicos e {description_count} descrições
- Crie exatamente 5 variações de anúncios completos
- Headlines devem ter no máximo 30 caracteres
- Descrições devem ter no máximo 90 caracteres
- Varie abordagens: benefício, urgência, prova social, garantia, preço"""

ASSET_REWRITE_PROMPT = """Você é um especialista em otimização de anúncios Google Ads.
Sua tarefa é reescrever ativos com baixa performance mantendo a essência mas melhorando a eficácia.

ESTRATÉGIAS DE MELHORIA:
1. Adicionar números e estatísticas
2. Incluir palavras de poder (Grátis, Novo, Exclusivo, Garantido)
3. Criar senso de urgência quando apropriado
4. Destacar benefícios únicos
5. Usar linguagem mais direta e ativa
6. Incluir proof points (anos de mercado, clientes atendidos)

EVITAR:
- Promessas exageradas
- Linguagem genérica
- Repetição de palavras
- Excesso de maiúsculas ou pontuação"""

ASSET_REWRITE_USER_PROMPT = """Reescreva os seguintes ativos de baixa performance, com 3 versões alternativas para cada.

## ATIVOS PARA REESCREVER
{assets}

## CONTEXTO DA CAMPANHA
- Produto/Serviço: {product_name}
- Público: {audience}
- Tom de voz: {tone}

LEMBRE-SE:
- Headlines: máximo 30 caracteres
- Descriptions: máximo 90 caracteres"""

IMAGE_ANALYSIS_PROMPT = """Você é um especialista em creative para Google Ads Performance Max.
Analise imagens de anúncios e forneça feedback detalhado.

CRITÉRIOS DE ANÁLISE:

1. COMPOSIÇÃO VISUAL: clareza da mensagem, cores e contraste, posicionamento
   de elementos, espaço para texto.
2. ADEQUAÇÃO PARA PMAX: funciona em formatos quadrado, paisagem e retrato;
   legível em tamanhos pequenos; destaque do produto; consistência com a marca.
3. CONFORMIDADE GOOGLE ADS: sem texto excessivo, sem conteúdo sensacionalista,
   resolução adequada, sem bordas desnecessárias.
4. SUGESTÕES DE MELHORIA: elementos a adicionar ou remover, ajustes de cor,
   versões alternativas.

Forneça uma pontuação de 1-10 e feedback acionável."""

IMAGE_ANALYSIS_USER_PROMPT = """Analise esta imagem para uso em Google Ads Performance Max.

CONTEXTO:
- Produto/Serviço: {product_name}
- Objetivo: {objective}
- Público-alvo: {audience}"""

AD_VARIATIONS_USER_PROMPT = """Crie 5 variações únicas deste anúncio para teste A/B.

## ANÚNCIO BASE
- Headline 1: "{headline1}"
- Headline 2: "{headline2}"
- Headline 3: "{headline3}"
- Descrição 1: "{description1}"
- Descrição 2: "{description2}"

## CONTEXTO
- Produto: {product_name}
- Público: {audience}
- Objetivo: {objective}

Use estas abordagens, uma por variação:
1. Foco em BENEFÍCIO principal
2. Foco em URGÊNCIA/escassez
3. Foco em PROVA SOCIAL
4. Foco em OFERTA/preço
5. Foco em DIFERENCIAL competitivo"""

HEADLINES_USER_PROMPT = """Crie {count} headlines únicos para Google Ads Performance Max.

- Produto/Serviço: {name}
- Descrição: {description}
- Benefícios: {benefits}
- Palavras-chave: {keywords}

Cada headline deve ter no máximo 30 caracteres. Varie entre benefício,
urgência, preço e diferencial."""

DESCRIPTIONS_USER_PROMPT = """Crie {count} descrições únicas para Google Ads Performance Max.

- Produto/Serviço: {name}
- Descrição: {description}
- Benefícios: {benefits}
- Diferenciais: {differentials}

Cada descrição deve ter no máximo 90 caracteres e terminar com uma chamada
para ação."""

ASSET_ANALYSIS_USER_PROMPT = """Analise os asset groups da campanha "{campaign_name}" e sugira melhorias específicas.

ASSET GROUPS:
{asset_groups}

EMPRESA: {company}

Para cada asset group, sugira novos títulos (máx. 30 caracteres), novas
descrições (máx. 90 caracteres) e melhorias concretas."""

CAMPAIGN_ADS_USER_PROMPT = """Crie anúncios para Google Ads Performance Max com as seguintes características:

- Empresa: {company}
- Campanha: {campaign_name}
- Tom: {tone}
- Objetivo: {objective}
- Palavras-chave: {keywords}

Crie 10 títulos (máx. 30 caracteres cada), 4 descrições (máx. 90 caracteres
cada) e 5 chamadas para ação curtas."""
